# Filename: neodrive_client/config.py
import os

# Environment overrides (highest precedence)
API_URL = os.getenv("NEODRIVE_API_URL") or "http://localhost:8000"
UPLOAD_TIMEOUT_SECONDS = float(os.getenv("NEODRIVE_UPLOAD_TIMEOUT_SECONDS", "1800"))
REQUEST_TIMEOUT_SECONDS = float(os.getenv("NEODRIVE_REQUEST_TIMEOUT_SECONDS", "30"))
CHUNK_SIZE = int(os.getenv("NEODRIVE_UPLOAD_CHUNK_SIZE", str(256 * 1024)))
