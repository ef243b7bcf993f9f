import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
STATIC_DIR = os.path.join(BASE_DIR, 'static')
INDEX_FILE = os.path.join(STATIC_DIR, 'index.html')

# Upstream API settings
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", 60))

# Chat completion settings
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4")
CHAT_MAX_TOKENS = int(os.getenv("CHAT_MAX_TOKENS", 1000))
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", 0.7))

# Image generation settings
IMAGE_MODELS = ("dall-e-2", "dall-e-3")
IMAGE_SIZES = ("256x256", "512x512", "1024x1024", "1792x1024", "1024x1792")
IMAGE_QUALITIES = ("standard", "hd")
IMAGE_STYLES = ("vivid", "natural")
DEFAULT_IMAGE_MODEL = os.getenv("IMAGE_MODEL", "dall-e-3")
DEFAULT_IMAGE_SIZE = "1024x1024"
DEFAULT_IMAGE_QUALITY = "hd"
DEFAULT_IMAGE_STYLE = "vivid"
MAX_PROMPT_LENGTH = 4000
MAX_IMAGES_PER_REQUEST = 4

# Rate limit handling
RATE_LIMIT_RETRIES = int(os.getenv("RATE_LIMIT_RETRIES", 2))
DEFAULT_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = float(os.getenv("MAX_RETRY_DELAY", 20))

# Database settings (unset disables persistence)
DATABASE_URL = os.getenv("DATABASE_URL")

# "development" includes raw upstream error messages in responses
APP_ENV = os.getenv("APP_ENV", "production")
DEBUG_ERRORS = APP_ENV == "development"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, x-session-id",
}
