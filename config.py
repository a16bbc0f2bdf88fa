import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))

CATALOG_API_URL = os.getenv("CATALOG_API_URL", "http://localhost:8080/api")
CATALOG_TIMEOUT_SECONDS = float(os.getenv("CATALOG_TIMEOUT_SECONDS", 5))
# Fail remote write errors instead of writing to the local cache only
CATALOG_STRICT_WRITES = _flag("CATALOG_STRICT_WRITES")

STRICT_ORDER_TRANSITIONS = _flag("STRICT_ORDER_TRANSITIONS")

STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")  # memory | mongo
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
STORE_COLLECTION = os.getenv("STORE_COLLECTION", "store")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
