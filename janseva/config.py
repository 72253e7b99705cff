# Environment configuration shared by the app, the importer and the seed modules

import os
import uuid
import logging
from pathlib import Path
from datetime import datetime, timezone

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
# Try multiple .env locations: next to the package, repo root, then cwd
BASE_DIR = Path(__file__).resolve().parent
for _env_path in [BASE_DIR / ".env", BASE_DIR.parent / ".env", Path.cwd() / ".env"]:
    if _env_path.is_file():
        load_dotenv(_env_path, override=True)
        break
else:
    load_dotenv(override=True)

logging.basicConfig(level=logging.INFO)

# ---------------------------------------------------------------------------
# Connection strings & models
# ---------------------------------------------------------------------------
MONGODB_URL      = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
MONGODB_DB       = os.getenv("MONGODB_DB", "janseva")
OPENAI_API_KEY   = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL     = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
VISION_MODEL     = os.getenv("VISION_MODEL", OPENAI_MODEL)
EMBEDDING_MODEL  = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
TRANSCRIBE_MODEL = os.getenv("TRANSCRIBE_MODEL", "whisper-1")

# "openai" uses the hosted models, "fallback" the keyword/rule-based variants
AI_BACKEND = os.getenv("AI_BACKEND") or ("openai" if OPENAI_API_KEY else "fallback")

# ---------------------------------------------------------------------------
# Auth & sessions
# ---------------------------------------------------------------------------
JWT_SECRET = os.getenv("JWT_SECRET", "")
if not JWT_SECRET or len(JWT_SECRET) < 32:
    raise RuntimeError(
        "FATAL: JWT_SECRET must be set in the environment and be at least 32 characters. "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
    )
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
SESSION_SECRET = os.getenv("SESSION_SECRET") or JWT_SECRET
SESSION_MAX_AGE = 24 * 60 * 60

# ---------------------------------------------------------------------------
# Files & server
# ---------------------------------------------------------------------------
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE_DIR.parent / "uploads")))
PORT = int(os.getenv("PORT", "3000"))

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def new_id() -> str:
    return str(uuid.uuid4())

def now_utc() -> datetime:
    return datetime.now(timezone.utc)
