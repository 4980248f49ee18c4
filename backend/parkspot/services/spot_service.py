import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from parkspot.core.database import utcnow
from parkspot.core.models import ParkingSpot
from parkspot.schemas import ParkingSpotCreate

logger = logging.getLogger(__name__)


def get_current_spot(db: Session, user_id: int) -> Optional[ParkingSpot]:
    """
    :param db: Сессия БД
    :param user_id: Уникальный юзер id
    :return: Текущее место пользователя или None
    :rtype: Optional[ParkingSpot]
    """
    return db.execute(
        select(ParkingSpot).where(ParkingSpot.user_id == user_id)
    ).scalar_one_or_none()


def save_spot(db: Session, user_id: int, spot: ParkingSpotCreate) -> ParkingSpot:
    """
    Сохраняет место, заменяя предыдущее целиком.

    Один INSERT ... ON CONFLICT(user_id) DO UPDATE - между удалением старой
    записи и вставкой новой нет окна, в котором у пользователя ноль строк.
    """
    values = {
        "user_id": user_id,
        "latitude": spot.latitude,
        "longitude": spot.longitude,
        "address": spot.address,
        "notes": spot.notes,
        "image_uri": spot.image_uri,
        "timestamp": spot.timestamp or utcnow(),
    }
    stmt = insert(ParkingSpot).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[ParkingSpot.user_id],
        set_={key: stmt.excluded[key] for key in values if key != "user_id"},
    )
    db.execute(stmt)
    db.commit()

    saved = get_current_spot(db, user_id)
    logger.info(f"Место сохранено для пользователя {user_id}: ({saved.latitude}, {saved.longitude})")
    return saved


def delete_spot(db: Session, user_id: int) -> int:
    result = db.execute(delete(ParkingSpot).where(ParkingSpot.user_id == user_id))
    db.commit()
    logger.info(f"Удалено мест для пользователя {user_id}: {result.rowcount}")
    return result.rowcount
