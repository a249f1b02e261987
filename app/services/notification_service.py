"""
Barber Notification Service
Sends booking events to the barber's Telegram chat.
Fire-and-forget: every failure is logged and returned, nothing is raised.
"""

import logging
from typing import Optional

import httpx

from ..config import TELEGRAM_API_BASE, TELEGRAM_BOT_TOKEN
from ..domain.scheduling.timegrid import format_hhmm
from ..utils.sanitization import mask_name

logger = logging.getLogger(__name__)

TELEGRAM_TIMEOUT_SECONDS = 10.0


async def send_telegram_message(chat_id: Optional[str], text: str) -> tuple[bool, Optional[str]]:
    """
    Send a Telegram message via the Bot API

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not TELEGRAM_BOT_TOKEN:
        logger.debug("Telegram bot token not configured, skipping message")
        return False, "Telegram not configured"

    if not chat_id:
        logger.debug("No Telegram chat id for recipient, skipping message")
        return False, "No chat id"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{TELEGRAM_API_BASE}/bot{TELEGRAM_BOT_TOKEN}/sendMessage",
                json={"chat_id": chat_id, "text": text},
                timeout=TELEGRAM_TIMEOUT_SECONDS,
            )

        if response.status_code == 200:
            logger.info(f"✅ Telegram message sent to chat {chat_id}")
            return True, None

        error_message = response.json().get("description", "Unknown error")
        logger.error(f"❌ Telegram API error [{response.status_code}]: {error_message}")
        return False, error_message

    except httpx.HTTPError as e:
        logger.error(f"❌ Telegram API error: {str(e)}")
        return False, str(e)
    except Exception as e:
        logger.error(f"❌ Error sending Telegram message: {str(e)}")
        return False, str(e)


def build_booking_message(booking, event: str) -> str:
    """Short message for a barber about one booking"""
    service_name = booking.service.name if booking.service else "Servicio"
    headline = {
        "confirmed": "✅ Nuevo turno confirmado",
        "cancelled": "🚫 Turno cancelado",
    }.get(event, f"ℹ️ Turno {event}")

    lines = [
        headline,
        f"📅 {booking.date.strftime('%d/%m/%Y')} {format_hhmm(booking.start_time)}",
        f"✂️ {service_name}",
        f"👤 {booking.client_name or '-'}",
    ]
    if booking.extras:
        lines.append(f"➕ {booking.extras}")
    if booking.amount_paid:
        lines.append(f"💳 Pagado: ${booking.amount_paid}")
    if booking.cash_amount:
        lines.append(f"💵 En local: ${booking.cash_amount}")
    return "\n".join(lines)


async def notify_barber(chat_id: Optional[str], text: str, booking_id: Optional[int] = None) -> bool:
    """Background-task entry point"""
    sent, error = await send_telegram_message(chat_id, text)
    if not sent and error not in ("Telegram not configured", "No chat id"):
        logger.warning(f"⚠️ Barber notification for booking {booking_id} not delivered: {error}")
    return sent


def booking_notice(booking, event: str) -> tuple[Optional[str], str, int]:
    """(chat_id, text, booking_id) ready to hand to BackgroundTasks"""
    chat_id = booking.barber.telegram_chat_id if booking.barber else None
    logger.debug(f"Queued {event} notice for booking {booking.id} ({mask_name(booking.client_name)})")
    return chat_id, build_booking_message(booking, event), booking.id
