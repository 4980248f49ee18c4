import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Ticker:
    """Периодический вызов callback. Одновременно работает не больше одного цикла"""

    def start(self, callback: Callable[[], None], interval: float) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    @property
    def running(self) -> bool:
        raise NotImplementedError


class ThreadTicker(Ticker):
    """
    Тикер на daemon-потоке.

    start() всегда останавливает предыдущий цикл, поэтому интервалы
    не перекрываются. stop() не ждёт поток: callback, который уже
    выполняется, доработает, но следующего вызова не будет.
    stop() можно звать из самого callback'а.
    """

    def __init__(self):
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    def start(self, callback, interval) -> None:
        self.stop()
        stop_event = threading.Event()

        def run():
            while not stop_event.wait(interval):
                try:
                    callback()
                except Exception:
                    logger.exception("Ошибка в callback тикера, тикер остановлен")
                    stop_event.set()

        self._stop_event = stop_event
        self._thread = threading.Thread(target=run, name="parkspot-timer-tick", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._stop_event is None:
            return
        self._stop_event.set()
        self._stop_event = None
        self._thread = None

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()
