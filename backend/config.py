import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    # Comma separated; "*" allows any origin
    CORS_ORIGINS = [origin.strip() for origin in os.environ.get("CORS_ORIGINS", "*").split(",") if origin.strip()]

    # Database config (defaults allow local run without crashing)
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", 3306))
    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_NAME = os.environ.get("DB_NAME", "splitledger")
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 10))

    # Currency
    BASE_CURRENCY = os.environ.get("BASE_CURRENCY", "SGD").strip().upper()
    EXCHANGE_RATE_API_KEY = os.environ.get("EXCHANGE_RATE_API_KEY")
    EXCHANGE_RATE_API_URL = os.environ.get("EXCHANGE_RATE_API_URL", "https://v6.exchangerate-api.com/v6")
    EXCHANGE_RATE_CACHE_SECONDS = int(os.environ.get("EXCHANGE_RATE_CACHE_SECONDS", 3600))
    EXCHANGE_RATE_TIMEOUT = float(os.environ.get("EXCHANGE_RATE_TIMEOUT", 10))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

config = Config()
