"""
HTTP клиент ParkSpot API на httpx.

- Bearer токен из AuthSession подставляется во все запросы с auth=True
- Сетевые ошибки, таймауты и 502/503/504/429 повторяются с экспоненциальной
  задержкой: retry_delay * 2 ** (попытка - 1), не больше max_retries раз
- 401/403 на авторизованном запросе сбрасывают сессию (принудительный logout)
"""
import logging
import time
from typing import Any, Callable, Optional

import httpx

from parkspot import config
from parkspot.client.exceptions import AuthenticationError, ParkSpotAPIError, ServiceUnavailableError
from parkspot.client.session import AuthSession
from parkspot.schemas import (
    AuthResponse,
    HealthResponse,
    ParkingSpotCreate,
    ParkingSpotResponse,
    TimerDataCreate,
    TimerDataResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)


class ParkSpotAPI:
    """Клиент REST API ParkSpot"""

    def __init__(
        self,
        session: AuthSession,
        base_url: str = config.API_URL,
        http_client: Optional[httpx.Client] = None,
        timeout: float = config.REQUEST_TIMEOUT,
        max_retries: int = config.MAX_RETRIES,
        retry_delay: float = config.RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        :param session: Сессия с токеном
        :param base_url: Адрес сервера без /api
        :param http_client: Готовый httpx.Client (например, TestClient в тестах)
        :param timeout: Таймаут запроса по умолчанию, секунды
        :param max_retries: Сколько раз повторять временные ошибки
        :param retry_delay: Базовая задержка перед повтором, секунды
        :param sleep: Функция ожидания между повторами
        """
        self.session = session
        self.http = http_client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    def close(self) -> None:
        self.http.close()

    # ============= ТРАНСПОРТ =============

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        auth: bool = True,
        skip_retry: bool = False,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        retries = 0 if skip_retry else (self.max_retries if max_retries is None else max_retries)
        headers = {}
        if auth and self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"

        attempt = 0
        while True:
            try:
                response = self.http.request(
                    method,
                    path,
                    json=json,
                    headers=headers,
                    timeout=timeout or self.timeout,
                )
            except httpx.TransportError as e:
                if attempt < retries:
                    attempt += 1
                    self._backoff(attempt, retries, method, path, reason=type(e).__name__)
                    continue
                logger.warning(f"⚠️ {method} {path}: сервер недоступен ({type(e).__name__}: {e})")
                raise ServiceUnavailableError(
                    f"Could not reach the server: {e}",
                    timed_out=isinstance(e, httpx.TimeoutException),
                ) from e

            if response.status_code in config.RETRYABLE_STATUS_CODES and attempt < retries:
                attempt += 1
                self._backoff(attempt, retries, method, path, reason=str(response.status_code))
                continue

            return self._handle_response(response, method, path, auth)

    def _backoff(self, attempt: int, retries: int, method: str, path: str, reason: str) -> None:
        delay = self.retry_delay * (2 ** (attempt - 1))
        logger.info(f"🔄 Повтор запроса ({attempt}/{retries}) {method} {path} через {delay:.1f}с: {reason}")
        self._sleep(delay)

    def _handle_response(self, response: httpx.Response, method: str, path: str, auth: bool) -> Any:
        status_code = response.status_code
        if status_code < 400:
            return response.json()

        detail = _error_detail(response)

        if status_code in (401, 403):
            if auth:
                logger.warning(f"⚠️ {method} {path}: токен отклонён ({status_code}), выходим из аккаунта")
                self.session.clear(reason=f"token rejected with {status_code}")
            raise AuthenticationError(status_code, detail)

        if status_code in config.RETRYABLE_STATUS_CODES:
            if status_code == 502:
                logger.info("Сервер ответил 502 - возможно, он просыпается")
            raise ServiceUnavailableError(detail, status_code=status_code)

        logger.error(f"{method} {path}: ошибка {status_code}: {detail}")
        raise ParkSpotAPIError(status_code, detail)

    # ============= USERS =============

    def register(self, username: str, password: str, email: Optional[str] = None) -> AuthResponse:
        data = self._request(
            "POST",
            "/api/users/register",
            json={"username": username, "password": password, "email": email},
            auth=False,
        )
        return AuthResponse.model_validate(data)

    def login(self, username: str, password: str) -> AuthResponse:
        data = self._request(
            "POST",
            "/api/users/login",
            json={"username": username, "password": password},
            auth=False,
        )
        return AuthResponse.model_validate(data)

    def get_current_user(self) -> UserResponse:
        return UserResponse.model_validate(self._request("GET", "/api/users/me"))

    # ============= PARKING SPOT =============

    def get_parking_spot(self) -> Optional[ParkingSpotResponse]:
        data = self._request("GET", "/api/parking-spot")
        return ParkingSpotResponse.model_validate(data) if data else None

    def save_parking_spot(self, spot: ParkingSpotCreate, **request_options) -> ParkingSpotResponse:
        data = self._request(
            "POST",
            "/api/parking-spot",
            json=spot.model_dump(mode="json", by_alias=True, exclude_none=True),
            **request_options,
        )
        return ParkingSpotResponse.model_validate(data)

    def delete_parking_spot(self) -> None:
        self._request("DELETE", "/api/parking-spot")

    # ============= TIMER =============

    def get_timer_data(self) -> Optional[TimerDataResponse]:
        data = self._request("GET", "/api/timer-data")
        return TimerDataResponse.model_validate(data) if data else None

    def save_timer_data(self, timer: TimerDataCreate) -> TimerDataResponse:
        data = self._request("POST", "/api/timer-data", json=timer.model_dump(mode="json"))
        return TimerDataResponse.model_validate(data)

    def delete_timer_data(self) -> None:
        self._request("DELETE", "/api/timer-data")

    # ============= HEALTH =============

    def health(self, timeout: Optional[float] = None) -> HealthResponse:
        data = self._request(
            "GET",
            "/api/health",
            auth=False,
            skip_retry=True,
            timeout=timeout or config.HEALTH_TIMEOUT,
        )
        return HealthResponse.model_validate(data)

    def check_server_status(self) -> bool:
        """
        Жив ли сервер.

        Сначала быстрая проверка, при неудаче - одна попытка разбудить
        сервер с длинным таймаутом (бесплатный хостинг засыпает).
        """
        try:
            if self.health().status == "ok":
                logger.debug("Сервер отвечает")
                return True
        except (ServiceUnavailableError, ParkSpotAPIError) as e:
            logger.info(f"Health check не прошёл: {e}")

        logger.info("Пытаемся разбудить сервер...")
        try:
            if self.health(timeout=config.WAKEUP_TIMEOUT).status == "ok":
                logger.info("Сервер проснулся")
                return True
        except (ServiceUnavailableError, ParkSpotAPIError) as e:
            logger.warning(f"⚠️ Сервер не проснулся: {e}")
        return False


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        return body.get("detail") or body.get("error")
    return None
