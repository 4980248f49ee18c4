"""
Клиент ParkSpot целиком: сессия, место, таймер и офлайн-синхронизация.

UI-оболочка (веб, мобильная, CLI) вызывает методы этого класса и
показывает self.spot, self.timer.display и self.message.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Tuple

import httpx

from parkspot import config
from parkspot.client.api_client import ParkSpotAPI
from parkspot.client.exceptions import (
    AuthenticationError,
    LocationPermissionDenied,
    LocationUnavailable,
    NotAuthenticatedError,
    ParkSpotAPIError,
    ServiceUnavailableError,
)
from parkspot.client.location import LocationProvider
from parkspot.client.notifications import LocalNotifier, Notifier
from parkspot.client.session import AuthSession
from parkspot.client.storage import LocalStore
from parkspot.client.sync import OfflineSpotSync, SaveResult, SyncResult, socket_connectivity_check
from parkspot.client.ticker import Ticker
from parkspot.client.timer_controller import TimerController, TimerState
from parkspot.schemas import ParkingSpotCreate, ParkingSpotResponse, UserResponse
from parkspot.utils.directions import directions_url

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParkSpotClientApp:

    def __init__(
        self,
        store: Optional[LocalStore] = None,
        base_url: str = config.API_URL,
        http_client: Optional[httpx.Client] = None,
        notifier: Optional[Notifier] = None,
        ticker: Optional[Ticker] = None,
        clock: Callable[[], datetime] = _utcnow,
        location: Optional[LocationProvider] = None,
        is_network_reachable: Optional[Callable[[], bool]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.store = store or LocalStore(Path(config.CLIENT_STORAGE_PATH))
        self.session = AuthSession(self.store)

        api_options = {"sleep": sleep} if sleep else {}
        self.api = ParkSpotAPI(self.session, base_url=base_url, http_client=http_client, **api_options)
        self.notifier = notifier or LocalNotifier(clock=clock)
        self.clock = clock
        self.location = location

        self.spot: Optional[ParkingSpotResponse] = None
        self.message: Optional[str] = None

        self.timer = TimerController(
            self.api,
            self.session,
            self.notifier,
            ticker=ticker,
            clock=clock,
            spot_address=lambda: self.spot.address if self.spot else None,
        )
        self.offline = OfflineSpotSync(
            self.api,
            self.store,
            is_network_reachable=is_network_reachable or socket_connectivity_check(base_url),
        )

        self.session.add_logout_listener(self._on_session_cleared)

    # ============= АККАУНТ =============

    @property
    def user(self) -> Optional[UserResponse]:
        return self.session.user

    def register(self, username: str, password: str, email: Optional[str] = None) -> UserResponse:
        auth = self.api.register(username, password, email)
        logger.info(f"Зарегистрирован пользователь {auth.user.username}")
        self._start_session(auth.token, auth.user)
        return auth.user

    def login(self, username: str, password: str) -> UserResponse:
        auth = self.api.login(username, password)
        self._start_session(auth.token, auth.user)
        return auth.user

    def logout(self) -> None:
        """
        Выход: уведомления пользователя отменяются, состояние таймера
        в памяти сбрасывается, строка таймера на сервере остаётся.
        Отложенное офлайн-место остаётся в ячейке пользователя и уйдёт
        на сервер при его следующем входе.
        """
        user_id = self.session.user_id
        if user_id is None:
            logger.info("Выход без активной сессии")
            return
        self.notifier.cancel_for_user(user_id)
        self.session.clear(reason="logout")
        logger.info(f"Пользователь {user_id} вышел, таймер на сервере сохранён")

    def refresh_user(self) -> Optional[UserResponse]:
        """Проверка токена через /users/me. Отклонённый токен завершает сессию"""
        user = self.api.get_current_user()
        self.session.update_user(user)
        return user

    def _start_session(self, token: str, user: UserResponse) -> None:
        # Состояние прошлого пользователя не должно мелькнуть у нового
        if self.session.user_id is not None and self.session.user_id != user.id:
            self.session.clear(reason="user switch")
        self.timer.reset_local()
        self.session.start(token, user)
        self.resume()

    def _on_session_cleared(self) -> None:
        self.timer.reset_local()
        self.spot = None

    # ============= ЖИЗНЕННЫЙ ЦИКЛ =============

    def resume(self) -> Optional[SyncResult]:
        """Вход или возврат приложения на передний план"""
        if not self.session.is_authenticated:
            return None
        user_id = self.session.user_id
        try:
            self.load_spot()
        except AuthenticationError:
            # Токен отклонён - сессия уже сброшена
            return None
        except ParkSpotAPIError as e:
            logger.error(f"Не удалось загрузить место пользователя {user_id}: {e}")
        self.timer.reconcile()
        if self.session.user_id != user_id:
            return None
        result = self.offline.sync(user_id, manual=False)
        if result.ok:
            self._remember_spot(result.spot)
            self.message = result.message
        return result

    def close(self) -> None:
        self.timer.ticker.stop()
        self.api.close()

    # ============= МЕСТО =============

    def _cache_key(self) -> str:
        return f"parkingSpot_{self.session.user_id}"

    def _remember_spot(self, spot: Optional[ParkingSpotResponse]) -> None:
        self.spot = spot
        if spot is None:
            self.store.remove(self._cache_key())
        else:
            self.store.set(self._cache_key(), spot.model_dump(mode="json", by_alias=True))

    def load_spot(self) -> Optional[ParkingSpotResponse]:
        """С сервера; если сервер недоступен - из локального кэша пользователя"""
        self._require_login()
        try:
            spot = self.api.get_parking_spot()
        except ServiceUnavailableError as e:
            cached = self.store.get(self._cache_key())
            logger.warning(f"⚠️ Сервер недоступен, место из локального кэша: {e}")
            self.spot = ParkingSpotResponse.model_validate(cached) if cached else None
            return self.spot
        self._remember_spot(spot)
        return spot

    def save_spot(
        self,
        latitude: float,
        longitude: float,
        address: Optional[str] = None,
        notes: Optional[str] = None,
        image_uri: Optional[str] = None,
    ) -> SaveResult:
        user_id = self._require_login()
        payload = ParkingSpotCreate(
            latitude=latitude,
            longitude=longitude,
            address=address,
            notes=notes,
            imageUri=image_uri,
            timestamp=self.clock(),
        )
        result = self.offline.save_spot(payload, user_id)
        self._remember_spot(result.spot)
        self.message = result.message
        return result

    def save_current_location(
        self,
        address: Optional[str] = None,
        notes: Optional[str] = None,
        image_uri: Optional[str] = None,
    ) -> Optional[SaveResult]:
        """
        Сохраняет текущую геопозицию.

        Запрет доступа к геолокации показывается пользователю,
        временная недоступность позиции только логируется.
        """
        self._require_login()
        if self.location is None:
            raise LocationUnavailable("No location provider configured")
        try:
            position = self.location.current_position()
        except LocationPermissionDenied:
            self.message = "Location permission is required to save your parking spot"
            self.notifier.alert("Permission needed", self.message)
            return None
        except LocationUnavailable as e:
            logger.warning(f"⚠️ Позиция недоступна: {e}")
            return None
        return self.save_spot(position.latitude, position.longitude, address, notes, image_uri)

    def clear_spot(self) -> None:
        """
        Удаляет место; активный таймер удаляется вместе с ним.

        Если сервер недоступен, место и таймер всё равно очищаются локально.
        """
        user_id = self._require_login()
        try:
            self.api.delete_parking_spot()
            message = "Parking spot cleared successfully!"
        except ServiceUnavailableError as e:
            logger.warning(f"⚠️ Сервер недоступен, место очищено только локально: {e}")
            message = "Could not connect to server. Cleared locally."
        self.timer.clear_for_spot_removal()
        self.offline.clear(user_id)
        self._remember_spot(None)
        self.message = message

    def manual_sync(self) -> SyncResult:
        result = self.offline.sync(self._require_login(), manual=True)
        if result.ok:
            self._remember_spot(result.spot)
        self.message = result.message
        return result

    def directions(self, platform: str = "web", origin: Optional[Tuple[float, float]] = None) -> Optional[str]:
        if self.spot is None:
            return None
        return directions_url(self.spot.latitude, self.spot.longitude, platform=platform, origin=origin)

    # ============= ТАЙМЕР =============

    def start_timer(self, hours=0, minutes=0) -> bool:
        return self.timer.start(hours, minutes)

    def cancel_timer(self) -> None:
        self.timer.cancel()
        self.message = "Timer canceled"

    @property
    def timer_state(self) -> TimerState:
        return self.timer.state

    def _require_login(self) -> int:
        user_id = self.session.user_id
        if user_id is None:
            raise NotAuthenticatedError("Please login first")
        return user_id
