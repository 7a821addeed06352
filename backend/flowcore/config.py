"""Server configuration constants: single source of truth for binding env vars."""

import os

# Server binding, used by uvicorn entrypoint
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Comma-separated list of allowed editor origins
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
