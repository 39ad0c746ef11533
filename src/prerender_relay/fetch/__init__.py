"""Upstream fetch layer for the rendering service.

This module provides the resilient relay of prerendered pages:
- Upstream request construction with forwarding attribution
- Retry loop with exponential backoff and a time budget
- Streaming relay that never rewrites a committed response
- Token and header redaction for logging
- Metrics collection for observability
"""

from prerender_relay.fetch.client import FetchClient
from prerender_relay.fetch.config import ClientConfig
from prerender_relay.fetch.metrics import RelayMetrics
from prerender_relay.fetch.models import (
    AttemptOutcome,
    AttemptResult,
    FetchError,
    FetchErrorClass,
    RetryPolicy,
)
from prerender_relay.fetch.redact import redact_headers, redact_token
from prerender_relay.fetch.retry import RetryState, run_with_retry
from prerender_relay.fetch.sink import ResponseSink
from prerender_relay.fetch.upstream import (
    build_upstream_request,
    clean_path,
    forwarded_for,
    request_target,
)


__all__ = [
    # Client
    "FetchClient",
    "ResponseSink",
    # Config
    "ClientConfig",
    # Models
    "AttemptOutcome",
    "AttemptResult",
    "FetchError",
    "FetchErrorClass",
    "RetryPolicy",
    # Retry
    "RetryState",
    "run_with_retry",
    # Upstream
    "build_upstream_request",
    "clean_path",
    "forwarded_for",
    "request_target",
    # Metrics
    "RelayMetrics",
    # Redaction
    "redact_headers",
    "redact_token",
]
