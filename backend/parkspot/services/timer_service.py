import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from parkspot.core.database import utcnow
from parkspot.core.models import TimerData
from parkspot.schemas import TimerDataCreate

logger = logging.getLogger(__name__)


def get_timer(db: Session, user_id: int) -> Optional[TimerData]:
    return db.execute(
        select(TimerData).where(TimerData.user_id == user_id)
    ).scalar_one_or_none()


def save_timer(db: Session, user_id: int, timer: TimerDataCreate) -> TimerData:
    """
    Сохраняет описание таймера, заменяя предыдущее целиком (upsert по user_id).

    :param db: Сессия БД
    :param user_id: Уникальный юзер id
    :param timer: Конец таймера, флаг активности, исходные часы/минуты
    :return: Сохранённая строка
    :rtype: TimerData
    """
    now = utcnow()
    values = {
        "user_id": user_id,
        "timer_end": timer.timer_end,
        "timer_active": timer.timer_active,
        "timer_hours": timer.timer_hours,
        "timer_minutes": timer.timer_minutes,
        "notification_id": timer.notification_id,
        "created_at": now,
        "updated_at": now,
    }
    stmt = insert(TimerData).values(**values)
    # onupdate в ON CONFLICT не срабатывает, поэтому updated_at передаём явно
    stmt = stmt.on_conflict_do_update(
        index_elements=[TimerData.user_id],
        set_={key: stmt.excluded[key] for key in values if key not in ("user_id", "created_at")},
    )
    db.execute(stmt)
    db.commit()

    saved = get_timer(db, user_id)
    logger.info(f"Таймер сохранён для пользователя {user_id}, конец: {saved.timer_end.isoformat()}")
    return saved


def delete_timer(db: Session, user_id: int) -> int:
    result = db.execute(delete(TimerData).where(TimerData.user_id == user_id))
    db.commit()
    if result.rowcount:
        logger.info(f"Таймер удалён для пользователя {user_id}")
    return result.rowcount
