"""Configuration settings for the file sharing server."""
import os

# Repository root (every request path resolves against this directory)
ROOT_DIR = os.getenv("ROOT_DIR", os.getcwd())

# Network
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "22010"))

# Optional TLS files handed to uvicorn
TLS_CERT_FILE = os.getenv("TLS_CERT_FILE")
TLS_KEY_FILE = os.getenv("TLS_KEY_FILE")

# Basic auth
AUTH_ENABLED = os.getenv("AUTH_ENABLED", "false").lower() in ("1", "true", "yes")
USERNAME = os.getenv("USERNAME", "admin")
PASSWORD = os.getenv("PASSWORD", "thisone")

# Streaming
CHUNK_SIZE = 8192  # 8KB chunks
ARCHIVE_PIPE_CAPACITY = 64 * 1024  # 64KB in flight between zip producer and response
ARCHIVE_SUFFIX = ".zip"

# Logs
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
