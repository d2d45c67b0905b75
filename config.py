"""
Production configuration via environment variables.
Load with python-dotenv; no hardcoded endpoints or certificate paths.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


# ----- Server -----
PORT = int(os.environ.get("PORT", "8000"))
HOST = os.environ.get("HOST", "0.0.0.0")
# TLS material is provisioned outside this service; uvicorn only needs the paths
SSL_KEYFILE = os.environ.get("SSL_KEYFILE") or None
SSL_CERTFILE = os.environ.get("SSL_CERTFILE") or None
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ----- Audio format (mono, 16-bit signed little-endian PCM) -----
SAMPLE_RATE = int(os.environ.get("SAMPLE_RATE", "48000"))
BYTES_PER_SAMPLE = int(os.environ.get("BYTES_PER_SAMPLE", "2"))
CHANNELS = 1

# ----- Segmenting -----
# Trailing audio of each chunk repeated at the head of the next short segment
OVERLAP_DURATION_MS = float(os.environ.get("OVERLAP_DURATION_MS", "300"))
# Number of inbound chunks concatenated into one long segment
LONG_CHUNK_AMOUNT = int(os.environ.get("LONG_CHUNK_AMOUNT", "5"))
RECORDINGS_DIR = os.environ.get("RECORDINGS_DIR", "recordings")

# ----- Transcription backend -----
SHORT_TRANSCRIBE_URL = os.environ.get("SHORT_TRANSCRIBE_URL", "http://localhost:8001/transcribeshort")
LONG_TRANSCRIBE_URL = os.environ.get("LONG_TRANSCRIBE_URL", "http://localhost:8002/transcribelong")
# Empty = wait for the backend indefinitely
_timeout = os.environ.get("TRANSCRIBE_TIMEOUT_SECONDS", "")
TRANSCRIBE_TIMEOUT_SECONDS = float(_timeout) if _timeout else None
# Route long segments through the single-concurrency dispatcher too
SERIALIZE_LONG_SEGMENTS = _env_bool("SERIALIZE_LONG_SEGMENTS")

# ----- Optional collaborators -----
SUMMARY_URL = os.environ.get("SUMMARY_URL", "")
STATIC_DIR = os.environ.get("STATIC_DIR", "public")

# ----- CORS (production: set to specific origins) -----
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
def get_cors_origins() -> list:
    """Return list of allowed CORS origins from env."""
    if CORS_ORIGINS == "*":
        return ["*"]
    return [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]
