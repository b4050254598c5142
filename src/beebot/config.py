"""Central configuration for the backend connection and protocol constants."""

import os

# Backend location — override with BEEBOT_API_URL env var
API_URL = os.environ.get("BEEBOT_API_URL", "http://127.0.0.1:8000/api/v1").rstrip("/")

# Bearer token sent with every request (token acquisition is handled elsewhere)
API_TOKEN = os.environ.get("BEEBOT_API_TOKEN") or None

# Total timeout for non-streaming requests, in seconds
REQUEST_TIMEOUT = float(os.environ.get("BEEBOT_REQUEST_TIMEOUT", "60"))

# Identifiers
DRAFT_CONVERSATION_ID = "new"  # The not-yet-created conversation
PROVISIONAL_PREFIX = "temp-"  # Marks client-created conversations awaiting a backend ID
MESSAGE_ID_PREFIX = "msg-"

# Conversation titles are derived from the first message
TITLE_MAX_CHARS = 50

# Fixed assistant texts
NO_RESPONSE_TEXT = "I received your message but had no response."
ERROR_TEMPLATE = (
    "Sorry, I encountered an error: {error}. Please make sure the backend is running."
)
TOOL_SOURCE_PREVIEW = "Source used for infographic generation"

# Document upload polling (seconds)
DOCUMENT_POLL_INTERVAL = 4.0  # Stays under the backend's 20/min rate limit
DOCUMENT_POLL_MAX_INTERVAL = 30.0
DOCUMENT_MAX_WAIT = 180.0
MAX_UPLOAD_MB = 50

# Defaults for history fetching
DEFAULT_PAGE_SIZE = 20
DEFAULT_MESSAGE_LIMIT = 50
