import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    stripe_secret_key: str | None
    stripe_webhook_secret: str | None
    gateway_currency: str
    public_base_url: str
    jwt_secret: str | None
    push_api_url: str
    push_server_key: str | None
    api_base_url: str
    live_orders_interval: float
    payment_poll_attempts: int
    payment_poll_interval: float
    log_level: str


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
        gateway_currency=os.getenv("GATEWAY_CURRENCY", "inr"),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:5173").rstrip("/"),
        jwt_secret=os.getenv("JWT_SECRET"),
        push_api_url=os.getenv("PUSH_API_URL", "https://fcm.googleapis.com/fcm/send"),
        push_server_key=os.getenv("PUSH_SERVER_KEY"),
        api_base_url=os.getenv("API_BASE_URL", "http://localhost:8000").rstrip("/"),
        live_orders_interval=float(os.getenv("LIVE_ORDERS_INTERVAL", "10")),
        payment_poll_attempts=int(os.getenv("PAYMENT_POLL_ATTEMPTS", "30")),
        payment_poll_interval=float(os.getenv("PAYMENT_POLL_INTERVAL", "2.0")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
