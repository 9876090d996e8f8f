"""Configuration settings for the anyShare server."""
import os

# Storage limits
MAX_FILE_SIZE = int(os.getenv("ANYSHARE_MAX_FILE_SIZE", 100 * 1000 * 1000))  # 100MB

# Expiration
DEFAULT_TTL_SECONDS = int(os.getenv("ANYSHARE_DEFAULT_TTL", 2 * 60 * 60))  # 2 hours
REJECT_INVALID_TTL = os.getenv("ANYSHARE_REJECT_INVALID_TTL", "false").lower() == "true"

# Identifier constraints (no i, l, o, v)
ID_LENGTH = 4
ID_ALPHABET = "abcdefghjkmnpqrstuwxyz0123456789"

# Directory paths
DATA_DIR = os.getenv("ANYSHARE_DATA_DIR", "./tmp")
TEMP_DIR = os.getenv("ANYSHARE_TEMP_DIR", "./tmp/.incoming")
SNAPSHOT_PATH = os.getenv("ANYSHARE_SNAPSHOT_PATH", "./tmp_file_map.json")
LOG_DIR = os.getenv("ANYSHARE_LOG_DIR", "./logs")

# Server
HOST = os.getenv("ANYSHARE_HOST", "0.0.0.0")
PORT = int(os.getenv("ANYSHARE_PORT", 8082))
URL_PREFIX = "/anyShare"
