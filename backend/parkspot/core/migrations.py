"""
Миграция старой схемы БД.

Первая версия сервера хранила одно место на всех: таблица parking_spots без
user_id. Такие данные переносятся на админа (или первого пользователя).
Так как теперь у пользователя может быть только одно место, переносится
самая свежая строка.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from parkspot import config
from parkspot.core.database import Base
from parkspot.core.models import User
from parkspot.schemas import ParkingSpotCreate
from parkspot.services import spot_service, user_service

logger = logging.getLogger(__name__)

LEGACY_TABLE = "parking_spots_legacy"


def needs_legacy_migration(engine: Engine) -> bool:
    inspector = inspect(engine)
    if "parking_spots" not in inspector.get_table_names():
        return False
    columns = {column["name"] for column in inspector.get_columns("parking_spots")}
    return "user_id" not in columns


def _parse_legacy_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            logger.warning(f"Невалидный timestamp в старой таблице: '{value}', ставим текущее время")
            return None
    if parsed.tzinfo is None:
        # CURRENT_TIMESTAMP в SQLite - это UTC
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _owner_for_legacy_rows(db: Session) -> User:
    """Админ по имени, иначе первый пользователь, иначе создаём админа"""
    owner = db.execute(
        select(User).where(User.username == config.DEFAULT_ADMIN_USERNAME)
    ).scalar_one_or_none()
    if owner is None:
        owner = db.execute(select(User).order_by(User.id).limit(1)).scalar_one_or_none()
    if owner is None:
        owner = user_service.ensure_default_admin(db)
    return owner


def migrate_legacy_schema(engine: Engine) -> int:
    """
    Переносит данные из parking_spots без user_id в новую схему.

    :param engine: Движок БД
    :return: Сколько строк перенесено (0 или 1)
    :rtype: int
    """
    if not needs_legacy_migration(engine):
        return 0

    logger.info("🔄 Найдена старая таблица parking_spots без user_id, начинаем миграцию")

    legacy_columns = {column["name"] for column in inspect(engine).get_columns("parking_spots")}
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE parking_spots RENAME TO {LEGACY_TABLE}"))

    Base.metadata.create_all(bind=engine)

    wanted = ["latitude", "longitude", "address", "notes", "imageUri", "timestamp"]
    selected = [name for name in wanted if name in legacy_columns]
    order_by = "timestamp DESC, rowid DESC" if "timestamp" in legacy_columns else "rowid DESC"

    with engine.connect() as conn:
        row = conn.execute(
            text(f"SELECT {', '.join(selected)} FROM {LEGACY_TABLE} ORDER BY {order_by} LIMIT 1")
        ).mappings().first()

    migrated = 0
    if row is not None:
        db = sessionmaker(bind=engine)()
        try:
            owner = _owner_for_legacy_rows(db)
            spot = ParkingSpotCreate(
                latitude=row["latitude"],
                longitude=row["longitude"],
                address=row.get("address"),
                notes=row.get("notes"),
                imageUri=row.get("imageUri"),
                timestamp=_parse_legacy_timestamp(row.get("timestamp")),
            )
            spot_service.save_spot(db, owner.id, spot)
            migrated = 1
            logger.info(f"Место из старой схемы перенесено на пользователя {owner.username} (id={owner.id})")
        finally:
            db.close()

    with engine.begin() as conn:
        conn.execute(text(f"DROP TABLE {LEGACY_TABLE}"))

    logger.info("Миграция parking_spots завершена")
    return migrated
