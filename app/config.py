import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./turnos.db")

# Business calendar
# All "today"/"now" comparisons happen in this zone
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/Argentina/Buenos_Aires")
# Grid granularity shared by slots, blocks and booking start times
SLOT_MINUTES = int(os.getenv("SLOT_MINUTES", "30"))

# Booking hold window
HOLD_WINDOW_MINUTES = int(os.getenv("HOLD_WINDOW_MINUTES", "15"))
EXPIRY_SWEEP_MINUTES = int(os.getenv("EXPIRY_SWEEP_MINUTES", "5"))

# Checkout and payouts
DEPOSIT_PERCENT = int(os.getenv("DEPOSIT_PERCENT", "50"))
COMMISSION_PERCENT = int(os.getenv("COMMISSION_PERCENT", "50"))
BONUS_EVERY_BOOKINGS = int(os.getenv("BONUS_EVERY_BOOKINGS", "10"))
BONUS_SERVICE_ID = int(os.getenv("BONUS_SERVICE_ID", "1"))
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "ARS")

# MercadoPago Configuration
MERCADOPAGO_ACCESS_TOKEN = os.getenv("MERCADOPAGO_ACCESS_TOKEN")
MERCADOPAGO_WEBHOOK_SECRET = os.getenv("MERCADOPAGO_WEBHOOK_SECRET")
MERCADOPAGO_API_BASE = os.getenv("MERCADOPAGO_API_BASE", "https://api.mercadopago.com")
# Every gateway call is bounded by this timeout (seconds)
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))

# Frontend base URL for checkout return pages
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
# Public base URL of this API, used as the gateway notification URL
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")

# Telegram Bot Configuration (barber notifications)
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
TELEGRAM_API_BASE = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org")

# Admin endpoints
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")
if not ADMIN_API_KEY:
    import warnings

    warnings.warn(
        "ADMIN_API_KEY not set! Admin endpoints are open - DO NOT USE IN PRODUCTION",
        RuntimeWarning,
        stacklevel=2,
    )

# Redis (arq queue + webhook dedupe cache)
REDIS_URL = os.getenv("REDIS_URL")
WEBHOOK_DEDUPE_TTL_SECONDS = int(os.getenv("WEBHOOK_DEDUPE_TTL_SECONDS", "86400"))
