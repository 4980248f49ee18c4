"""
Конфигурация бэкенда и клиента ParkSpot.
"""

from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

# Корневая директория проекта и базовые настройки
BASE_DIR = Path(__file__).parent.parent  # backend/
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


# ============= DATA =============
DATA_DIR = Path(os.getenv("DATA_DIR", BASE_DIR / "data"))
DATA_DIR.mkdir(parents=True, exist_ok=True)

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{str(DATA_DIR / 'parking.db')}")

LOGS_DIR = Path(os.getenv("LOGS_DIR", BASE_DIR / "logs"))
LOGS_DIR.mkdir(parents=True, exist_ok=True)


# ============= БЕЗОПАСНОСТЬ =============
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))  # 7 дней
ALGORITHM = os.getenv("ALGORITHM", "HS256")
SECRET_KEY = os.getenv("SECRET_KEY", "parkspot-secret-key")

# Админ по умолчанию создаётся, если таблица users пустая.
# На него же переносятся споты из старой схемы без user_id
CREATE_DEFAULT_ADMIN = os.getenv("CREATE_DEFAULT_ADMIN", "true").lower() == "true"
DEFAULT_ADMIN_USERNAME = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")
DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@parkspot.com")


# ============= API =============
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", 5001))

if ENVIRONMENT == "production":
    CORS_ORIGINS = ["*"]
else:
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://localhost:3001,http://localhost:3002,"
            "http://127.0.0.1:3000,http://127.0.0.1:3001,http://127.0.0.1:3002",
        ).split(",")
        if origin.strip()
    ]


# ============= КЛИЕНТ =============
API_URL = os.getenv("API_URL", f"http://localhost:{API_PORT}")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 30))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", 3))
RETRY_DELAY = float(os.getenv("RETRY_DELAY", 2))  # секунды, удваивается на каждой попытке
RETRYABLE_STATUS_CODES = (429, 502, 503, 504)

HEALTH_TIMEOUT = float(os.getenv("HEALTH_TIMEOUT", 5))
WAKEUP_TIMEOUT = float(os.getenv("WAKEUP_TIMEOUT", 30))  # сервер на бесплатном хостинге долго просыпается

CLIENT_STORAGE_PATH = Path(os.getenv("CLIENT_STORAGE_PATH", DATA_DIR / "client_storage.json"))

TIMER_TICK_SECONDS = 1.0
