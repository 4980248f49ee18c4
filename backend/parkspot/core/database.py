"""
Настройка подключения к базе данных.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine, DateTime
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.types import TypeDecorator

from parkspot import config

# Создаём движок БД
engine = create_engine(
    config.DATABASE_URL,
    connect_args={"check_same_thread": False}  # Только для SQLite
)

# Сессия для работы с БД
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Базовый класс для моделей
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """
    SQLite не хранит часовой пояс.

    Пишем naive UTC, читаем обратно aware UTC - клиент сравнивает
    timer_end со своими часами, так что зона должна быть явной.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_db():
    """
    Dependency для получения сессии БД в endpoint'ах.

    Использование:
        @app.post("/users")
        def create_user(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
