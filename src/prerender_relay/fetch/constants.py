"""HTTP constants for the prerender fetch layer.

Centralizes status codes and header names shared across modules.
"""

# Upstream status codes with a dedicated meaning
HTTP_STATUS_OK = 200
HTTP_STATUS_FOUND = 302
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500
HTTP_STATUS_SERVICE_UNAVAILABLE = 503

# Default rendering service
DEFAULT_SERVER = "http://api.seo4ajax.com"
DEFAULT_SERVER_IP = "127.0.0.1"

# Timing defaults (seconds)
DEFAULT_RETRY_TIMEOUT_SECONDS = 30.0
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0

# Headers
HEADER_X_FORWARDED_FOR = "x-forwarded-for"
HEADER_LOCATION = "location"
CONDITIONAL_HEADERS = frozenset({"if-modified-since", "if-none-match"})

# Request headers describing the inbound connection, never forwarded
INBOUND_ONLY_HEADERS = frozenset({"host", "content-length"})

# RFC 9110 hop-by-hop headers, never relayed from upstream
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)
