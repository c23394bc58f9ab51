from pathlib import Path
from config.loader import get_config_loader

# Get the config loader instance
config = get_config_loader()

LOG_LEVEL = config.get("LOG_LEVEL", "info")

# Auth endpoint configuration
# Client-credential exchange: a pre-shared Basic key is traded for a bearer token
AUTH_HOST = config.get("AUTH_HOST", "https://ngw.devices.sberbank.ru:9443/api/v2")
AUTHORIZATION_KEY = config.get("AUTHORIZATION_KEY", "")
AUTH_SCOPE = config.get("AUTH_SCOPE", "GIGACHAT_API_PERS")
# Refresh this many seconds before the token actually expires
TOKEN_REFRESH_MARGIN = config.get("TOKEN_REFRESH_MARGIN", 60)

# Completion API configuration
API_HOST = config.get("API_HOST", "https://gigachat.devices.sberbank.ru/api/v1")
# Some providers use certificates signed by a CA that is not in the default bundle
VERIFY_SSL = config.get("VERIFY_SSL", True)

# Timeout configuration
# Connection timeout: Time to establish TCP connection
CONNECT_TIMEOUT = config.get("CONNECT_TIMEOUT", 30.0)
# Read timeout: Time between receiving data chunks, detects stalled streams
READ_TIMEOUT = config.get("READ_TIMEOUT", 300.0)
# Write timeout: Time to send the request body
WRITE_TIMEOUT = config.get("WRITE_TIMEOUT", 60.0)
# Request timeout: Total timeout for non-streaming requests (auth, chat, summaries)
REQUEST_TIMEOUT = config.get("REQUEST_TIMEOUT", 120.0)
# Stream timeout: Total timeout for streaming requests
STREAM_TIMEOUT = config.get("STREAM_TIMEOUT", 600.0)

# Chat defaults (used until the user saves their own settings)
DEFAULT_MODEL = config.get("DEFAULT_MODEL", "GigaChat")
DEFAULT_TEMPERATURE = config.get("DEFAULT_TEMPERATURE", 0.7)
DEFAULT_MAX_TOKENS = config.get("DEFAULT_MAX_TOKENS", 2048)
DEFAULT_SYSTEM_PROMPT = config.get("DEFAULT_SYSTEM_PROMPT", "")
DEFAULT_COMPRESSION_ENABLED = config.get("DEFAULT_COMPRESSION_ENABLED", True)
DEFAULT_COMPRESSION_THRESHOLD = config.get("DEFAULT_COMPRESSION_THRESHOLD", 20)
DEFAULT_RECENT_MESSAGES_COUNT = config.get("DEFAULT_RECENT_MESSAGES_COUNT", 10)
DEFAULT_STREAM = config.get("DEFAULT_STREAM", False)

# Stream tracing / debugging
STREAM_TRACE_ENABLED = config.get("STREAM_TRACE_ENABLED", False)
STREAM_TRACE_DIR = config.get("STREAM_TRACE_DIR", "stream_traces")
STREAM_TRACE_MAX_BYTES = config.get("STREAM_TRACE_MAX_BYTES", 262144)

# Local state
DATA_DIR = Path(config.get_path("DATA_DIR", str(Path.home() / ".streamchat")))
TOKEN_FILE = config.get_path("TOKEN_FILE", str(DATA_DIR / "token.json"))
SETTINGS_FILE = config.get_path("SETTINGS_FILE", str(DATA_DIR / "settings.json"))
CONVERSATION_FILE = config.get_path("CONVERSATION_FILE", str(DATA_DIR / "conversation.json"))
