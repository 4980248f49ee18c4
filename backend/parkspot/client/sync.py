"""
Офлайн-синхронизация парковочного места.

Если сохранить место не удалось из-за сети или недоступного сервера,
тело запроса кладётся в одну ячейку (не очередь: следующая неудача
перезаписывает предыдущую). Синхронизация запускается автоматически при
возврате приложения на передний план или вручную. Проверки по порядку:
сеть -> health сервера -> есть ли что отправлять.

Ячейка своя у каждого пользователя (offlineParkingSpot_<user_id>): при смене
аккаунта чужое место не уйдёт на сервер под новым токеном, а своё
синхронизируется при следующем входе.
"""
import logging
import socket
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlparse

from parkspot import config
from parkspot.client.api_client import ParkSpotAPI
from parkspot.client.exceptions import ParkSpotAPIError, ServiceUnavailableError
from parkspot.client.storage import LocalStore
from parkspot.schemas import ParkingSpotCreate, ParkingSpotResponse

logger = logging.getLogger(__name__)

STAGING_KEY = "offlineParkingSpot"


def staging_key(user_id: int) -> str:
    return f"{STAGING_KEY}_{user_id}"


class SyncStatus(str, Enum):
    SYNCED = "synced"
    NO_NETWORK = "no_network"
    SERVER_UNAVAILABLE = "server_unavailable"
    NOTHING_STAGED = "nothing_staged"
    FAILED = "failed"


@dataclass
class SyncResult:
    status: SyncStatus
    spot: Optional[ParkingSpotResponse] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.SYNCED


@dataclass
class SaveResult:
    spot: ParkingSpotResponse
    staged: bool
    message: str


def socket_connectivity_check(base_url: str = config.API_URL, timeout: float = 3.0) -> Callable[[], bool]:
    """Проверка сети: удаётся ли открыть TCP соединение с хостом сервера"""
    parsed = urlparse(base_url)
    host = parsed.hostname or "localhost"
    port = parsed.port or (443 if parsed.scheme == "https" else 80)

    def check() -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError as e:
            logger.info(f"Сеть недоступна ({host}:{port}): {e}")
            return False

    return check


class OfflineSpotSync:
    """Сохранение места с откатом в локальную ячейку и её синхронизация"""

    def __init__(
        self,
        api: ParkSpotAPI,
        store: LocalStore,
        is_network_reachable: Optional[Callable[[], bool]] = None,
    ):
        self.api = api
        self.store = store
        self.is_network_reachable = is_network_reachable or socket_connectivity_check()

    # ============= ЯЧЕЙКА =============

    def staged(self, user_id: int) -> Optional[ParkingSpotCreate]:
        data = self.store.get(staging_key(user_id))
        return ParkingSpotCreate.model_validate(data) if data else None

    def stage(self, spot: ParkingSpotCreate, user_id: int) -> None:
        self.store.set(staging_key(user_id), spot.model_dump(mode="json", by_alias=True))
        logger.info(f"Место пользователя {user_id} сохранено локально, синхронизируем, когда сервер станет доступен")

    def clear(self, user_id: int) -> None:
        self.store.remove(staging_key(user_id))

    # ============= СОХРАНЕНИЕ =============

    def save_spot(self, spot: ParkingSpotCreate, user_id: int) -> SaveResult:
        """
        Сохраняет место на сервере; при недоступности сервера - в ячейку.

        Ошибки валидации и авторизации не перехватываются.
        """
        try:
            saved = self.api.save_parking_spot(spot)
        except ServiceUnavailableError as e:
            logger.warning(f"⚠️ Сервер недоступен, место сохраняется офлайн: {e}")
            self.stage(spot, user_id)
            return SaveResult(
                spot=_local_spot(spot, user_id),
                staged=True,
                message="Saved locally. Will sync when online.",
            )
        return SaveResult(spot=saved, staged=False, message="Parking spot saved successfully!")

    # ============= СИНХРОНИЗАЦИЯ =============

    def sync(self, user_id: int, manual: bool = False) -> SyncResult:
        """
        Отправляет отложенное место пользователя на сервер.

        :param user_id: Владелец ячейки - тот, под чьим токеном идёт запрос
        :param manual: Ручной запуск - без повторов на транспорте
            и с понятным сообщением об ошибке
        :return: Результат; при неудаче ячейка не трогается
        """
        if not self.is_network_reachable():
            return SyncResult(SyncStatus.NO_NETWORK, message="Please check your internet connection and try again.")

        if not self.api.check_server_status():
            return SyncResult(
                SyncStatus.SERVER_UNAVAILABLE,
                message="The server is starting up. Please wait a moment and try again.",
            )

        spot = self.staged(user_id)
        if spot is None:
            return SyncResult(SyncStatus.NOTHING_STAGED, message="No offline parking data to synchronize.")

        logger.info(f"🔄 Синхронизация отложенного места ({'вручную' if manual else 'автоматически'})")
        try:
            if manual:
                saved = self.api.save_parking_spot(spot, skip_retry=True)
            else:
                saved = self.api.save_parking_spot(spot)
        except (ServiceUnavailableError, ParkSpotAPIError) as e:
            logger.error(f"Синхронизация не удалась, данные остаются в ячейке: {e}")
            return SyncResult(SyncStatus.FAILED, message=_sync_error_message(e))

        self.clear(user_id)
        logger.info(f"Отложенное место пользователя {user_id} синхронизировано с сервером")
        return SyncResult(
            SyncStatus.SYNCED,
            spot=saved,
            message="Your parking spot has been successfully synchronized with the server.",
        )


def _local_spot(spot: ParkingSpotCreate, user_id: int) -> ParkingSpotResponse:
    # id=0 - у места ещё нет серверного id
    return ParkingSpotResponse(
        id=0,
        user_id=user_id,
        latitude=spot.latitude,
        longitude=spot.longitude,
        address=spot.address,
        notes=spot.notes,
        imageUri=spot.image_uri,
        timestamp=spot.timestamp or datetime.now(timezone.utc),
    )


def _sync_error_message(error: Exception) -> str:
    if isinstance(error, ServiceUnavailableError):
        if error.status_code == 502:
            return ("The server appears to be starting up or experiencing issues. "
                    "Please wait a minute and try again.")
        if error.timed_out:
            return ("The connection timed out. The server may be under heavy load or starting up. "
                    "Please try again in a moment.")
        if error.status_code is None:
            return "Could not reach the server. Please check your connection and try again."
        return f"Server error ({error.status_code}). Please try again later."
    if isinstance(error, ParkSpotAPIError):
        return f"Server error ({error.status_code}). Please try again later."
    return "Could not synchronize with the server. Please try again later."
