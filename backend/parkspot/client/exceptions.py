from typing import Optional


class ParkSpotAPIError(Exception):
    """Сервер ответил ошибкой (4xx/5xx)"""

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail or f"Server error ({status_code})"
        super().__init__(f"{status_code}: {self.detail}")


class AuthenticationError(ParkSpotAPIError):
    """401/403 - токена нет, он невалиден или просрочен"""


class ServiceUnavailableError(Exception):
    """
    Сервер недоступен: сетевая ошибка, таймаут или 502/503/504/429
    после исчерпания повторов.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, timed_out: bool = False):
        self.status_code = status_code
        self.timed_out = timed_out
        super().__init__(message)


class NotAuthenticatedError(Exception):
    """Операция требует входа в аккаунт"""


class InvalidTimerDuration(ValueError):
    """Длительность таймера нулевая или отрицательная"""


class LocationPermissionDenied(Exception):
    """Пользователь запретил доступ к геолокации"""


class LocationUnavailable(Exception):
    """Позиция временно недоступна или запрос геолокации истёк по таймауту"""
