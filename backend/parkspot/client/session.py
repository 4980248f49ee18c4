import logging
from typing import Callable, List, Optional

from parkspot.client.storage import LocalStore
from parkspot.schemas import UserResponse

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


class AuthSession:
    """
    Токен и текущий пользователь клиента.

    Токен непрозрачен: клиент смотрит только на его наличие.
    Слушатели logout вызываются при любом сбросе сессии, в том числе
    принудительном (сервер ответил 401/403).
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self._logout_listeners: List[Callable[[], None]] = []

    @property
    def token(self) -> Optional[str]:
        return self.store.get(TOKEN_KEY)

    @property
    def user(self) -> Optional[UserResponse]:
        data = self.store.get(USER_KEY)
        return UserResponse.model_validate(data) if data else None

    @property
    def user_id(self) -> Optional[int]:
        data = self.store.get(USER_KEY)
        return data.get("id") if data else None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.user_id is not None

    def start(self, token: str, user: UserResponse) -> None:
        self.store.set(TOKEN_KEY, token)
        self.store.set(USER_KEY, user.model_dump(mode="json"))
        logger.info(f"Сессия начата для пользователя {user.username} (id={user.id})")

    def update_user(self, user: UserResponse) -> None:
        self.store.set(USER_KEY, user.model_dump(mode="json"))

    def add_logout_listener(self, listener: Callable[[], None]) -> None:
        self._logout_listeners.append(listener)

    def clear(self, reason: str = "logout") -> None:
        had_session = self.token is not None
        self.store.multi_remove([TOKEN_KEY, USER_KEY])
        if not had_session:
            return
        logger.info(f"Сессия сброшена ({reason})")
        for listener in list(self._logout_listeners):
            listener()
