import os

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pedidos_express.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# CORS
_cors_env = os.getenv("ORIGENS_CORS", os.getenv("CORS_ORIGINS", ""))
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

CORS_ALLOW_ORIGIN_REGEX = os.getenv("CORS_ALLOW_ORIGIN_REGEX", "").strip() or None

# Sessão (cookie assinado do painel web)
SESSION_SECRET = os.getenv("SESSION_SECRET", "")
SESSION_MAX_AGE_SECONDS = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(60 * 60 * 24 * 7)))
SESSION_COOKIE_SECURE = _env_flag("SESSION_COOKIE_SECURE", "0" if IS_DEV else "1")
SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "lax").strip().lower()
if SESSION_COOKIE_SAMESITE not in {"lax", "strict", "none"}:
    SESSION_COOKIE_SAMESITE = "lax"

# Chamadas internas que endereçam um tenant diretamente via X-Tenant-Id
INTERNAL_API_TOKEN = os.getenv("INTERNAL_API_TOKEN", "").strip()

# Reprint / clear-print-request não checam o tenant dono por padrão (apps de impressão legados)
ENFORCE_PRINT_OWNERSHIP = _env_flag("ENFORCE_PRINT_OWNERSHIP")

# WhatsApp (Meta Cloud API) - credenciais globais do bot
META_WA_ACCESS_TOKEN = os.getenv("META_WA_ACCESS_TOKEN", os.getenv("TOKEN_API_META", ""))
META_WA_PHONE_NUMBER_ID = os.getenv("META_WA_PHONE_NUMBER_ID", os.getenv("PHONE_NUMBER_ID", ""))
META_API_VERSION = os.getenv("META_API_VERSION", os.getenv("WHATSAPP_GRAPH_VERSION", "v21.0"))
WHATSAPP_PROVIDER = os.getenv("WHATSAPP_PROVIDER", "cloud").strip().lower()
WHATSAPP_TIMEOUT_SECONDS = float(os.getenv("WHATSAPP_TIMEOUT_SECONDS", "20"))
COUNTRY_CODE = os.getenv("COUNTRY_CODE", "55").strip()

# Esteira de pedidos (SSE)
FEED_TIMEZONE = os.getenv("FEED_TIMEZONE", "America/Sao_Paulo")
FEED_INTERVAL_SECONDS = float(os.getenv("FEED_INTERVAL_SECONDS", "5"))
FEED_MAX_ORDERS = int(os.getenv("FEED_MAX_ORDERS", "100"))

# Sequência diária dos pedidos (00h BRT = novo dia)
DISPLAY_ID_TIMEZONE = os.getenv("DISPLAY_ID_TIMEZONE", "America/Sao_Paulo")
