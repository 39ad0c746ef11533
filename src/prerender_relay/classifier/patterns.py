"""Default user-agent and path patterns for prerender classification.

All patterns are matched with ``re.search`` and ``re.IGNORECASE``.
"""

from typing import Final


# Crawlers that execute JavaScript themselves, or apps that should get the
# live page. Checked before the allow list, so a match here always wins.
DEFAULT_DENY_USER_AGENT: Final[str] = (
    r"google.*bot|bing|msnbot|yandexbot|pinterest.*ios|mail\.ru"
)

# Generic bot signatures and known link-preview agents.
DEFAULT_ALLOW_USER_AGENT: Final[str] = (
    r"bot|crawler|spider|archiver|pinterest|facebookexternalhit|flipboardproxy"
)

# A dot and a 2-4 character extension at the end of the path, optionally
# followed by a query string.
DEFAULT_STATIC_PATH: Final[str] = r"\.[^/.?]{2,4}(?:\?.*)?$"

ESCAPED_FRAGMENT: Final[str] = "_escaped_fragment_"

PRERENDER_METHODS: Final[frozenset[str]] = frozenset({"GET", "HEAD"})
