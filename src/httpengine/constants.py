"""Constants for the HTTP request engine.

Centralizes defaults and HTTP-related constants to avoid duplication across modules.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_UNAUTHORIZED = 401

# Timeouts (milliseconds)
DEFAULT_CONNECT_TIMEOUT_MS = 30000
DEFAULT_RECEIVE_TIMEOUT_MS = 120000

# Redirections
DEFAULT_ACCEPT_REDIRECTIONS = True
DEFAULT_MAX_REDIRECTIONS_ON_SAME_URI = 3
DEFAULT_ACCEPT_ONLY_SAME_HOST_REDIRECTIONS = False
DEFAULT_ACCEPT_RELATIVE_REDIRECTIONS = True
MAX_TOTAL_REDIRECTIONS = 20

# OAuth 2.0 token lifetime safety margin (seconds)
DEFAULT_TOKEN_EXPIRY_SAFETY_SECONDS = 5

# Placeholders
DEFAULT_URL_PLACEHOLDER_BEGIN = "{"
DEFAULT_URL_PLACEHOLDER_END = "}"
DEFAULT_INPUT_PLACEHOLDER_OPENER = "{"
DEFAULT_INPUT_PLACEHOLDER_CLOSER = "}"
DEFAULT_INPUT_PLACEHOLDER_PREFIX = ".input"
PLACEHOLDER_ESCAPE = "\\"
PLACEHOLDER_DEFAULT_SEPARATOR = ":-"

# Encoding
DEFAULT_RESPONSE_ENCODING = "ISO-8859-1"
DEFAULT_BODY_ENCODING = "utf-8"

DEFAULT_METHOD = "GET"
DEFAULT_USER_AGENT = "httpengine/1.0"

# Chunk size for payload reads
DEFAULT_CHUNK_SIZE = 8192

# OAuth 2.0 client-credentials grant
OAUTH_GRANT_TYPE_CLIENT_CREDENTIALS = "client_credentials"
OAUTH_KEY_GRANT_TYPE = "grant_type"
OAUTH_KEY_SCOPE = "scope"
OAUTH_KEY_CLIENT_ID = "client_id"
OAUTH_KEY_CLIENT_SECRET = "client_secret"  # noqa: S105
