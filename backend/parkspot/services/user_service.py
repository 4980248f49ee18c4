import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parkspot import config
from parkspot.core.models import User
from parkspot.core.security import hash_password, verify_password

logger = logging.getLogger(__name__)


class UserAlreadyExists(Exception):
    """Username или email уже заняты"""


def create_user(db: Session, username: str, password: str, email: Optional[str] = None) -> User:
    """
    Создаёт пользователя.

    Raises:
        UserAlreadyExists: username или email уже зарегистрированы
    """
    conditions = [User.username == username]
    if email:
        conditions.append(User.email == email)

    if db.execute(select(User).where(or_(*conditions))).first():
        raise UserAlreadyExists(username)

    user = User(username=username, email=email, hashed_password=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise UserAlreadyExists(username)
    db.refresh(user)
    return user


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    """Пользователь при верном пароле, иначе None"""
    user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


def ensure_default_admin(db: Session) -> Optional[User]:
    """
    Создаёт админа по умолчанию, если таблица users пустая.

    На его id переносятся места из старой схемы без user_id.
    """
    if db.execute(select(User).limit(1)).first():
        return None

    admin = create_user(
        db,
        username=config.DEFAULT_ADMIN_USERNAME,
        password=config.DEFAULT_ADMIN_PASSWORD,
        email=config.DEFAULT_ADMIN_EMAIL,
    )
    logger.info(f"Создан админ по умолчанию: {admin.username} (id={admin.id})")
    return admin
