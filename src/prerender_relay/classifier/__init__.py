"""Classification of inbound requests for prerendering."""

from prerender_relay.classifier.classifier import (
    ClassificationInput,
    RequestClassifier,
)
from prerender_relay.classifier.patterns import (
    DEFAULT_ALLOW_USER_AGENT,
    DEFAULT_DENY_USER_AGENT,
    DEFAULT_STATIC_PATH,
    ESCAPED_FRAGMENT,
)


__all__ = [
    "ClassificationInput",
    "RequestClassifier",
    "DEFAULT_ALLOW_USER_AGENT",
    "DEFAULT_DENY_USER_AGENT",
    "DEFAULT_STATIC_PATH",
    "ESCAPED_FRAGMENT",
]
