"""
Контроллер таймера парковки.

Состояния: IDLE (таймера нет), ACTIVE (идёт отсчёт), EXPIRED (время вышло,
ждём реакции пользователя). На пользователя - один отсчёт и одна строка
timer_data на сервере.

Оставшееся время всегда считается от timer_end и текущих часов, а не от
сохранённого счётчика: пока клиент закрыт, время продолжает идти.
Запись на сервер и удаление оттуда - best-effort: ошибка логируется,
а состояние в памяти остаётся главным до следующей сверки.
"""
import functools
import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from parkspot import config
from parkspot.client.api_client import ParkSpotAPI
from parkspot.client.exceptions import (
    InvalidTimerDuration,
    NotAuthenticatedError,
    ParkSpotAPIError,
    ServiceUnavailableError,
)
from parkspot.client.notifications import Notifier
from parkspot.client.session import AuthSession
from parkspot.client.ticker import Ticker, ThreadTicker
from parkspot.schemas import TimerDataCreate
from parkspot.utils.time_format import format_duration_message, format_remaining_time

logger = logging.getLogger(__name__)


class TimerState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    EXPIRED = "expired"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_amount(value: Any) -> int:
    """Часы/минуты из формы: пустое или нечисловое значение - это 0"""
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _locked(method):
    """Переходы таймера выполняются под замком контроллера: тик идёт в своём потоке"""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


class TimerController:
    """
    Обратный отсчёт до конца оплаченной парковки.

    Платформенные зависимости передаются снаружи: API (транспорт),
    уведомления, тикер и часы. Один контроллер обслуживает любые клиенты.
    """

    def __init__(
        self,
        api: ParkSpotAPI,
        session: AuthSession,
        notifier: Notifier,
        ticker: Optional[Ticker] = None,
        clock: Callable[[], datetime] = _utcnow,
        tick_interval: float = config.TIMER_TICK_SECONDS,
        on_change: Optional[Callable[["TimerController"], None]] = None,
        spot_address: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.api = api
        self.session = session
        self.notifier = notifier
        self.ticker = ticker or ThreadTicker()
        self.clock = clock
        self.tick_interval = tick_interval
        self._on_change = on_change
        self._spot_address = spot_address or (lambda: None)

        self.state = TimerState.IDLE
        self.end_time: Optional[datetime] = None
        self.remaining_ms: Optional[int] = None
        self.hours = 0
        self.minutes = 0
        self.notification_id: Optional[str] = None
        self.owner_id: Optional[int] = None
        # Защита от повторного start(), пока предыдущий не закончился
        self.starting = False
        self._lock = threading.RLock()
        # Номер текущего цикла тикера: тики остановленного цикла игнорируются
        self._generation = 0

    # ============= СВОЙСТВА =============

    @property
    def is_active(self) -> bool:
        return self.state == TimerState.ACTIVE

    @property
    def display(self) -> str:
        return format_remaining_time(self.remaining_ms)

    # ============= ПЕРЕХОДЫ =============

    @_locked
    def start(self, hours: Any = 0, minutes: Any = 0) -> bool:
        """
        IDLE/EXPIRED -> ACTIVE.

        Raises:
            InvalidTimerDuration: длительность нулевая или отрицательная
            NotAuthenticatedError: пользователь не вошёл
        :return: False, если старт уже выполняется
        """
        if self.starting:
            logger.info("Старт таймера уже выполняется, повторный вызов пропущен")
            return False

        self.starting = True
        try:
            hours, minutes = _parse_amount(hours), _parse_amount(minutes)
            if hours < 0 or minutes < 0 or (hours == 0 and minutes == 0):
                raise InvalidTimerDuration("Please set a valid time for the timer")

            user_id = self.session.user_id
            if user_id is None:
                raise NotAuthenticatedError("You must be logged in to set a timer")

            # Сначала гасим предыдущий отсчёт, чтобы не было двух интервалов
            self._stop_ticking()
            self._cancel_notification()

            duration = timedelta(hours=hours, minutes=minutes)
            end_time = self.clock() + duration
            message = format_duration_message(hours, minutes)

            self.notification_id = self.notifier.schedule(
                duration.total_seconds(),
                "Parking Timer",
                self._expiry_body(f"Your parking time is up! Your car has been parked for {message}."),
                data={"user_id": user_id},
            )
            self.state = TimerState.ACTIVE
            self.end_time = end_time
            self.remaining_ms = int(duration.total_seconds() * 1000)
            self.hours, self.minutes = hours, minutes
            self.owner_id = user_id

            self._persist()
            if self.owner_id != user_id:
                # Пока сохраняли, сессию сбросили (токен отклонён)
                return False

            self._start_ticking()
            logger.info(f"Таймер запущен для пользователя {user_id}: {message}")
            self.notifier.alert("Timer Started", f"Timer set for {message}")
            self._changed()
            return True
        finally:
            self.starting = False

    @_locked
    def tick(self, generation: Optional[int] = None) -> None:
        """
        Вызывается тикером раз в секунду.

        :param generation: Номер цикла тикера; тик уже остановленного цикла,
            дождавшийся замка после смены состояния, ничего не делает
        """
        if generation is not None and generation != self._generation:
            return

        if self.owner_id is None or self.session.user_id != self.owner_id:
            # Сменился пользователь: останавливаемся, чужое состояние не трогаем
            logger.info(f"Пользователь сменился, тикер таймера пользователя {self.owner_id} остановлен")
            self._stop_ticking()
            return

        if self.state != TimerState.ACTIVE or self.end_time is None:
            self._stop_ticking()
            return

        remaining = self.end_time - self.clock()
        if remaining <= timedelta(0):
            self._expire()
        else:
            self.remaining_ms = int(remaining.total_seconds() * 1000)
            self._changed()

    @_locked
    def cancel(self) -> None:
        """ACTIVE -> IDLE по действию пользователя"""
        self._stop_ticking()
        self._cancel_notification()
        self._delete_persisted()
        self._reset_fields()
        self.state = TimerState.IDLE
        logger.info("Таймер отменён пользователем")
        self.notifier.alert("Timer Canceled", "Your parking timer was canceled.")
        self._changed()

    @_locked
    def dismiss(self) -> None:
        """EXPIRED -> IDLE без нового таймера"""
        if self.state != TimerState.EXPIRED:
            return
        self._reset_fields()
        self.state = TimerState.IDLE
        self._changed()

    @_locked
    def reconcile(self) -> TimerState:
        """
        Сверка с сервером при входе или возврате приложения на передний план.

        Нет строки -> IDLE. Конец в будущем -> ACTIVE с пересчитанным
        остатком. Конец в прошлом -> EXPIRED сразу, строка удаляется,
        отрицательный отсчёт не показывается никогда.
        """
        user_id = self.session.user_id
        if user_id is None:
            logger.info("Сверка таймера пропущена: пользователь не вошёл")
            self.reset_local()
            return self.state

        try:
            timer = self.api.get_timer_data()
        except (ParkSpotAPIError, ServiceUnavailableError) as e:
            logger.warning(f"⚠️ Не удалось получить таймер с сервера: {e}")
            self.reset_local()
            return self.state

        if timer is None or not timer.timer_active:
            logger.info(f"Активного таймера на сервере нет (пользователь {user_id})")
            self.reset_local()
            return self.state

        self._stop_ticking()
        self._cancel_notification()

        end_time = timer.timer_end
        if end_time.tzinfo is None:
            end_time = end_time.replace(tzinfo=timezone.utc)

        self.owner_id = user_id
        self.hours = timer.timer_hours or 0
        self.minutes = timer.timer_minutes or 0

        remaining = end_time - self.clock()
        if remaining <= timedelta(0):
            logger.info(f"Таймер пользователя {user_id} истёк, пока клиент был закрыт")
            self.end_time = end_time
            self._expire()
            return self.state

        self.state = TimerState.ACTIVE
        self.end_time = end_time
        self.remaining_ms = int(remaining.total_seconds() * 1000)
        self.notification_id = self.notifier.schedule(
            remaining.total_seconds(),
            "Parking Timer",
            self._expiry_body("Your parking time is up!"),
            data={"user_id": user_id},
        )
        self._start_ticking()
        logger.info(f"Таймер восстановлен для пользователя {user_id}, конец: {end_time.isoformat()}")
        self._changed()
        return self.state

    @_locked
    def reset_local(self) -> None:
        """
        Полный сброс состояния в памяти (logout).

        Строка на сервере сохраняется - на другом устройстве или при
        следующем входе отсчёт продолжится.
        """
        self._stop_ticking()
        self._cancel_notification()
        self._reset_fields()
        self.state = TimerState.IDLE
        self.starting = False
        self._changed()

    @_locked
    def clear_for_spot_removal(self) -> None:
        """Место очищено: таймер удаляется и локально, и на сервере"""
        self._stop_ticking()
        self._cancel_notification()
        self._delete_persisted()
        self._reset_fields()
        self.state = TimerState.IDLE
        self._changed()

    # ============= ВНУТРЕННЕЕ =============

    def _expire(self) -> None:
        owner_id = self.owner_id
        self._stop_ticking()
        if self.session.user_id != owner_id:
            logger.info(f"Таймер пользователя {owner_id} истёк после смены сессии, пропускаем")
            return

        self._cancel_notification()
        self.end_time = None
        self.remaining_ms = 0
        self.state = TimerState.EXPIRED
        self._delete_persisted()
        if self.session.user_id != owner_id:
            # Пока удаляли строку, сессию сбросили или сменили
            logger.info(f"Сессия пользователя {owner_id} сменилась во время истечения таймера")
            return
        logger.info(f"Время парковки вышло (пользователь {owner_id})")
        self.notifier.alert("Timer Expired!", self._expiry_body("Your parking time is up!"))
        self._changed()

    def _start_ticking(self) -> None:
        self._generation += 1
        generation = self._generation
        self.ticker.start(lambda: self.tick(generation), self.tick_interval)

    def _stop_ticking(self) -> None:
        self._generation += 1
        self.ticker.stop()

    def _expiry_body(self, text: str) -> str:
        address = self._spot_address()
        return f"{text}\nLocation: {address}" if address else text

    def _persist(self) -> None:
        try:
            self.api.save_timer_data(TimerDataCreate(
                timer_end=self.end_time,
                timer_active=True,
                timer_hours=self.hours,
                timer_minutes=self.minutes,
                notification_id=self.notification_id,
            ))
            logger.debug("Таймер сохранён на сервере")
        except (ParkSpotAPIError, ServiceUnavailableError) as e:
            logger.error(f"Не удалось сохранить таймер на сервере: {e}")

    def _delete_persisted(self) -> None:
        try:
            self.api.delete_timer_data()
        except (ParkSpotAPIError, ServiceUnavailableError) as e:
            # Следующая сверка всё равно сравнит timer_end с текущим временем
            logger.error(f"Не удалось удалить таймер на сервере: {e}")

    def _cancel_notification(self) -> None:
        if self.notification_id:
            self.notifier.cancel(self.notification_id)
            self.notification_id = None

    def _reset_fields(self) -> None:
        self.end_time = None
        self.remaining_ms = None
        self.notification_id = None
        self.owner_id = None

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self)
