import logging
from datetime import datetime
from typing import Optional, Union

logger = logging.getLogger(__name__)


def format_remaining_time(ms: Optional[float]) -> str:
    """
    Оставшееся время в формате HH:MM:SS.

    :param ms: Миллисекунды (None и 0 -> 00:00:00, отрицательные тоже)
    :return: Строка для отображения обратного отсчёта
    :rtype: str
    """
    if not ms or ms < 0:
        return "00:00:00"

    total_seconds = int(ms // 1000)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}{'s' if value != 1 else ''}"


def format_duration_message(hours: int, minutes: int) -> str:
    """'2 hours and 5 minutes', '1 hour', '5 minutes'"""
    parts = []
    if hours > 0:
        parts.append(_plural(hours, "hour"))
    if minutes > 0:
        parts.append(_plural(minutes, "minute"))
    return " and ".join(parts)


def format_saved_time(timestamp: Union[str, datetime, None]) -> str:
    """
    Время сохранения места для UI: 'Sun, Oct 18, 2026 at 2:05 PM'.

    Время выводится в локальной зоне пользователя.
    """
    if not timestamp:
        return "Unknown time"

    if isinstance(timestamp, datetime):
        moment = timestamp
    else:
        try:
            moment = datetime.fromisoformat(timestamp)
        except ValueError:
            logger.error(f"Невалидная дата: {timestamp}")
            return "Invalid date"

    if moment.tzinfo is not None:
        moment = moment.astimezone()

    hour = moment.hour % 12 or 12
    am_pm = "AM" if moment.hour < 12 else "PM"
    return f"{moment:%a}, {moment:%b} {moment.day}, {moment.year} at {hour}:{moment:%M} {am_pm}"
