import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScheduledNotification:
    identifier: str
    title: str
    body: str
    fire_at: datetime
    data: Dict[str, Any] = field(default_factory=dict)


class Notifier:
    """
    Интерфейс платформенных уведомлений.

    Доставка уведомлений - забота платформы; контроллеру таймера нужно
    только запланировать, отменить и показать alert.
    """

    def schedule(self, seconds: float, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> str:
        raise NotImplementedError

    def cancel(self, identifier: str) -> None:
        raise NotImplementedError

    def scheduled(self) -> List[ScheduledNotification]:
        raise NotImplementedError

    def alert(self, title: str, body: str) -> None:
        raise NotImplementedError

    def cancel_for_user(self, user_id: int) -> int:
        """Отменяет все уведомления, запланированные для пользователя"""
        cancelled = 0
        for notification in self.scheduled():
            owner = notification.data.get("user_id")
            if owner is not None and int(owner) == int(user_id):
                self.cancel(notification.identifier)
                cancelled += 1
        if cancelled:
            logger.info(f"Отменено уведомлений пользователя {user_id}: {cancelled}")
        return cancelled


class LocalNotifier(Notifier):
    """
    Уведомления в памяти процесса.

    Alert'ы пишутся в лог и, если задан, передаются в on_alert
    (UI-оболочка показывает диалог).
    """

    def __init__(
        self,
        on_alert: Optional[Callable[[str, str], None]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._pending: Dict[str, ScheduledNotification] = {}
        self._on_alert = on_alert
        self._clock = clock

    def schedule(self, seconds, title, body, data=None) -> str:
        identifier = str(uuid.uuid4())
        self._pending[identifier] = ScheduledNotification(
            identifier=identifier,
            title=title,
            body=body,
            fire_at=self._clock() + timedelta(seconds=seconds),
            data=dict(data or {}),
        )
        logger.info(f"Уведомление {identifier} запланировано через {int(seconds)}с")
        return identifier

    def cancel(self, identifier: str) -> None:
        if self._pending.pop(identifier, None) is not None:
            logger.info(f"Уведомление {identifier} отменено")

    def scheduled(self) -> List[ScheduledNotification]:
        return list(self._pending.values())

    def alert(self, title: str, body: str) -> None:
        logger.warning(f"🔔 {title}: {body}")
        if self._on_alert:
            self._on_alert(title, body)
