import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./classbook.db")
DB_POOL_TIMEOUT_SECONDS = _get_int(os.getenv("DB_POOL_TIMEOUT_SECONDS"), 10)
DB_STATEMENT_TIMEOUT_MS = _get_int(os.getenv("DB_STATEMENT_TIMEOUT_MS"), 5000)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

# "unconstrained": an owner with no declared slots accepts any instant.
# "require_slots": an owner must declare at least one slot before proposals are accepted.
EMPTY_AVAILABILITY_POLICY = os.getenv("EMPTY_AVAILABILITY_POLICY", "unconstrained").strip().lower()
REQUIRE_REQUESTER_APPROVAL = _get_bool(os.getenv("REQUIRE_REQUESTER_APPROVAL"), default=True)

CREATE_LISTING_INDEXES = _get_bool(os.getenv("CREATE_LISTING_INDEXES"), default=True)
DEFAULT_LIST_LIMIT = _get_int(os.getenv("DEFAULT_LIST_LIMIT"), 0)
MAX_LIST_LIMIT = _get_int(os.getenv("MAX_LIST_LIMIT"), 200)

MAX_TITLE_LENGTH = 120
MAX_DESCRIPTION_LENGTH = 2000


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if EMPTY_AVAILABILITY_POLICY not in {"unconstrained", "require_slots"}:
        raise RuntimeError(
            "EMPTY_AVAILABILITY_POLICY must be 'unconstrained' or 'require_slots'."
        )
    if MAX_LIST_LIMIT < 1:
        raise RuntimeError("MAX_LIST_LIMIT must be positive.")
