"""Request classifier deciding prerender eligibility."""

import re
from dataclasses import dataclass

from starlette.requests import Request

from prerender_relay.classifier.patterns import (
    DEFAULT_ALLOW_USER_AGENT,
    DEFAULT_DENY_USER_AGENT,
    DEFAULT_STATIC_PATH,
    ESCAPED_FRAGMENT,
    PRERENDER_METHODS,
)


@dataclass(frozen=True)
class ClassificationInput:
    """Read-only view of the request fields the classifier looks at.

    Attributes:
        method: HTTP method, any case.
        query: Raw query string without the leading ``?``.
        user_agent: User-Agent header value, empty if absent.
        path: URL path.
    """

    method: str
    query: str = ""
    user_agent: str = ""
    path: str = "/"

    @classmethod
    def from_request(cls, request: Request) -> "ClassificationInput":
        """Build a classification input from a Starlette request.

        Args:
            request: Inbound request.

        Returns:
            ClassificationInput for the request.
        """
        return cls(
            method=request.method,
            query=request.url.query,
            user_agent=request.headers.get("user-agent", ""),
            path=request.url.path,
        )


def _compile(pattern: str | re.Pattern[str]) -> re.Pattern[str]:
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern, re.IGNORECASE)


class RequestClassifier:
    """Decides whether a request should be answered with a prerendered page.

    The classifier is stateless once built; its compiled patterns are never
    mutated, so one instance can be shared by every request. Patterns given
    as strings are compiled case-insensitively; pre-compiled patterns are
    used as they are.
    """

    def __init__(
        self,
        deny_user_agent: str | re.Pattern[str] = DEFAULT_DENY_USER_AGENT,
        allow_user_agent: str | re.Pattern[str] = DEFAULT_ALLOW_USER_AGENT,
        static_path: str | re.Pattern[str] = DEFAULT_STATIC_PATH,
    ) -> None:
        """Initialize the classifier.

        Args:
            deny_user_agent: User agents that must receive the live page.
            allow_user_agent: User agents that receive the prerendered page.
            static_path: Paths referencing static files.
        """
        self._deny = _compile(deny_user_agent)
        self._allow = _compile(allow_user_agent)
        self._static = _compile(static_path)

    def decide(self, request: ClassificationInput) -> bool:
        """Classify a request.

        Rules are checked in order and the first match wins:

        1. Methods other than GET and HEAD are never prerendered.
        2. ``_escaped_fragment_`` in the query string always prerenders.
        3. Deny-listed user agents get the live page.
        4. Static file paths get the live page.
        5. Allow-listed user agents are prerendered.

        Args:
            request: Fields of the inbound request.

        Returns:
            True if the request should be served from the rendering service.
        """
        if request.method.upper() not in PRERENDER_METHODS:
            return False

        if ESCAPED_FRAGMENT in request.query:
            return True

        user_agent = request.user_agent or ""
        if self._deny.search(user_agent):
            return False

        if self._static.search(request.path or ""):
            return False

        return self._allow.search(user_agent) is not None

    def is_static_path(self, path: str) -> bool:
        """Check if a path references a static file."""
        return self._static.search(path) is not None
