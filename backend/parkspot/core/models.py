# Таблицы ParkSpot: пользователи, парковочные места и таймеры

from sqlalchemy import Column, Integer, String, Float, Boolean, Text, ForeignKey
from parkspot.core.database import Base, UTCDateTime, utcnow


class User(Base):
    """SQLAlchemy модель - структура таблицы в БД"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)  # В БД: INTEGER PRIMARY KEY
    username = Column(String, unique=True, nullable=False)      # В БД: VARCHAR UNIQUE NOT NULL
    hashed_password = Column(String, nullable=False)            # В БД: VARCHAR
    email = Column(String, unique=True, nullable=True)          # Необязательный, но уникальный
    created_at = Column(UTCDateTime, default=utcnow)            # В БД: TIMESTAMP


class ParkingSpot(Base):
    """Одно место на пользователя: user_id уникален, сохранение = upsert"""
    __tablename__ = "parking_spots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(Text)
    notes = Column(Text)
    image_uri = Column(Text)  # В API - imageUri
    timestamp = Column(UTCDateTime, default=utcnow)


class TimerData(Base):
    """Один таймер на пользователя, для синхронизации между устройствами"""
    __tablename__ = "timer_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    timer_end = Column(UTCDateTime, nullable=False)
    timer_active = Column(Boolean, default=True)
    timer_hours = Column(Integer)    # Исходная длительность - только для отображения
    timer_minutes = Column(Integer)
    notification_id = Column(String)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
