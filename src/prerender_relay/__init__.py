"""Prerender relay: serve rendered snapshots to crawlers and link-preview bots."""

from prerender_relay.classifier import ClassificationInput, RequestClassifier
from prerender_relay.fetch import (
    ClientConfig,
    FetchClient,
    RelayMetrics,
    RetryPolicy,
)
from prerender_relay.middleware import PrerenderMiddleware


__all__ = [
    "ClassificationInput",
    "ClientConfig",
    "FetchClient",
    "PrerenderMiddleware",
    "RelayMetrics",
    "RequestClassifier",
    "RetryPolicy",
]

__version__ = "0.1.0"
