"""
Shared constants used across the upload tool.
"""

# Hosting service API
DEFAULT_API_BASE = "https://api.vimeo.com"
API_ACCEPT_HEADER = "application/vnd.vimeo.*+json;version=3.4"
DEFAULT_CONTENT_TYPE = "video/mp4"

# Upload settings
DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024  # 8MB
MIN_CHUNK_SIZE = 1024
DEFAULT_PARALLEL_UPLOADS = 2
MAX_PARALLEL_UPLOADS = 8

# Retry settings
DEFAULT_MAX_RETRIES = 5
DEFAULT_BASE_DELAY = 1.0     # seconds, doubled per attempt
DEFAULT_MAX_DELAY = 60.0     # seconds
DEFAULT_JITTER = 0.1         # fraction of the computed delay

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 30  # seconds, per request
HTTP_POOL_SIZE = 10

# Backends
BACKEND_VIMEO = "vimeo"
BACKEND_LOCAL = "local"

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/vimeo-upload"
DEFAULT_STATE_DIR = "~/.local/share/vimeo-upload/tickets"
DEFAULT_LOCAL_STORE = "~/.local/share/vimeo-upload/store"
CONFIG_FILENAME = "config.json"

# Environment variables
ENV_ACCESS_TOKEN = "VIMEO_ACCESS_TOKEN"
ENV_API_BASE = "VIMEO_API_BASE"
ENV_BACKEND = "UPLOAD_BACKEND"
ENV_LOCAL_PATH = "UPLOAD_LOCAL_PATH"
ENV_CHUNK_SIZE = "UPLOAD_CHUNK_SIZE"
ENV_MAX_RETRIES = "UPLOAD_MAX_RETRIES"
ENV_TIMEOUT = "UPLOAD_TIMEOUT"
