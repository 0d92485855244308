import os
from dotenv import load_dotenv
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Load .env file if it exists (for local development)
env_path = os.path.join(BACKEND_DIR, ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)
    logger.info("Loaded .env file for local development")
else:
    logger.info("No .env file found, using environment variables")

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID", "")
ELEVENLABS_VOICE_NAME = os.getenv("ELEVENLABS_VOICE_NAME", "Gioele Mediterraneo")
HEDRA_API_KEY = os.getenv("HEDRA_API_KEY", "")
HEDRA_BASE_URL = os.getenv("HEDRA_BASE_URL", "https://api.hedra.com/web-app/public").rstrip("/")
HEDRA_MODEL_ID = os.getenv("HEDRA_MODEL_ID", "d1dd37a3-e39a-4854-a298-6510289f9cf2")
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")

PRESENTER_IMAGES_DIR = os.getenv("PRESENTER_IMAGES_DIR", os.path.join(BACKEND_DIR, "assets", "presenters"))
ARTIFACT_DIR = os.getenv("ARTIFACT_DIR", os.path.join(BACKEND_DIR, "assets", "output"))

# Session store
SESSION_TTL_S = int(os.getenv("SESSION_TTL_S", "1800"))
SESSION_SWEEP_INTERVAL_S = int(os.getenv("SESSION_SWEEP_INTERVAL_S", "600"))
MAX_ACTIVE_SESSIONS = int(os.getenv("MAX_ACTIVE_SESSIONS", "5"))

SEARCH_LIMIT = int(os.getenv("SEARCH_LIMIT", "3"))

# Render service timing. Hedra needs the uploaded assets to settle before a
# generation may reference them, and typically renders in ~5 minutes.
ASSET_SETTLE_DELAY_S = float(os.getenv("ASSET_SETTLE_DELAY_S", "30"))
RENDER_INITIAL_DELAY_S = float(os.getenv("RENDER_INITIAL_DELAY_S", "300"))
RENDER_POLL_INTERVAL_S = float(os.getenv("RENDER_POLL_INTERVAL_S", "30"))
RENDER_MAX_ATTEMPTS = int(os.getenv("RENDER_MAX_ATTEMPTS", "15"))
RENDER_DURATION_MS = int(os.getenv("RENDER_DURATION_MS", "20000"))
RENDER_ASPECT_RATIO = os.getenv("RENDER_ASPECT_RATIO", "9:16")
RENDER_RESOLUTION = os.getenv("RENDER_RESOLUTION", "720p")

# Call-level timeouts (seconds), separate from the polling budget above
HTTP_TIMEOUT_S = float(os.getenv("HTTP_TIMEOUT_S", "60"))
UPLOAD_TIMEOUT_S = float(os.getenv("UPLOAD_TIMEOUT_S", "120"))
DOWNLOAD_TIMEOUT_S = float(os.getenv("DOWNLOAD_TIMEOUT_S", "120"))
STATUS_TIMEOUT_S = float(os.getenv("STATUS_TIMEOUT_S", "30"))
HEALTH_TIMEOUT_S = float(os.getenv("HEALTH_TIMEOUT_S", "10"))

# Comma-separated list of allowed origins for CORS (e.g., "https://app.example.com,https://www.example.com").
_allowed_origins_env = os.getenv("ALLOWED_ORIGINS", "").strip()
if _allowed_origins_env:
    ALLOWED_ORIGINS = [o.strip() for o in _allowed_origins_env.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = ["*"]

def has_all_keys() -> bool:
    keys = {
        "OPENAI_API_KEY": OPENAI_API_KEY,
        "ELEVENLABS_API_KEY": ELEVENLABS_API_KEY,
        "ELEVENLABS_VOICE_ID": ELEVENLABS_VOICE_ID,
        "HEDRA_API_KEY": HEDRA_API_KEY,
        "SUPABASE_URL": SUPABASE_URL,
        "SUPABASE_KEY": SUPABASE_KEY,
    }
    missing = [name for name, value in keys.items() if not value]
    if missing:
        logger.warning(f"Missing API keys: {', '.join(missing)}")
    return not missing
