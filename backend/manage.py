"""
Управление проектом - CLI команды.

Использование:
    python manage.py check-db
    python manage.py reset-db
    python manage.py seed-db
    python manage.py create-tables
    python manage.py migrate
"""

import argparse
from sqlalchemy.orm import sessionmaker

from parkspot.core.database import Base, engine
from parkspot.core.migrations import migrate_legacy_schema
from parkspot.core.models import User, ParkingSpot, TimerData
from parkspot.services import user_service
from parkspot.utils.time_format import format_saved_time


def check_db():
    """Проверка базы данных - пользователи, их места и таймеры"""
    SessionLocal = sessionmaker(bind=engine)
    db = SessionLocal()

    try:
        users = db.query(User).all()

        print(f"\n📊 Всего пользователей в БД: {len(users)}\n")
        print("=" * 60)

        if not users:
            print("⚠️  База данных пустая.")
            print("   Зарегистрируйте пользователя через /api/users/register\n")
            return

        for user in users:
            spot = db.query(ParkingSpot).filter(ParkingSpot.user_id == user.id).first()
            timer = db.query(TimerData).filter(TimerData.user_id == user.id).first()

            print(f"ID: {user.id}")
            print(f"Username: {user.username}")
            print(f"Email: {user.email or '-'}")
            print(f"Создан: {user.created_at}")
            if spot:
                print(f"Место: ({spot.latitude}, {spot.longitude}) {spot.address or ''}")
                print(f"Сохранено: {format_saved_time(spot.timestamp)}")
            else:
                print("Место: нет")
            if timer:
                print(f"Таймер до: {timer.timer_end.isoformat()} (active={timer.timer_active})")
            print("-" * 60)

    finally:
        db.close()


def reset_db():
    """Сброс базы данных (удалить все таблицы и создать заново)"""
    print("⚠️  ВНИМАНИЕ: Это удалит все данные из БД!")
    confirm = input("Продолжить? (yes/no): ")

    if confirm.lower() != "yes":
        print("❌ Отменено")
        return

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    print("✅ База данных сброшена\n")


def seed_db():
    """Заполнить БД тестовыми пользователями"""
    SessionLocal = sessionmaker(bind=engine)
    db = SessionLocal()

    test_users = [
        {"email": "user1@parkspot.com", "username": "user1", "password": "password123"},
        {"email": "user2@parkspot.com", "username": "user2", "password": "password123"},
    ]

    Base.metadata.create_all(bind=engine)

    try:
        admin = user_service.ensure_default_admin(db)
        if admin:
            print(f"✅ Создан админ: {admin.username}")

        for user_data in test_users:
            try:
                user_service.create_user(db, **user_data)
            except user_service.UserAlreadyExists:
                print(f"⚠️  Пользователь {user_data['username']} уже существует")
                continue
            print(f"✅ Создан пользователь: {user_data['username']}")
    finally:
        db.close()

    print(f"\n✅ Тестовые данные добавлены\n")


def create_tables():
    """Создать таблицы в БД (если их нет)"""
    Base.metadata.create_all(bind=engine)
    print("✅ Таблицы созданы\n")


def migrate():
    """Перенести места из старой схемы (без user_id) на админа"""
    migrated = migrate_legacy_schema(engine)
    Base.metadata.create_all(bind=engine)
    if migrated:
        print("✅ Место из старой схемы перенесено\n")
    else:
        print("✅ Миграция не требуется\n")


def main():
    """Главная функция - обработка команд"""
    parser = argparse.ArgumentParser(
        description="Управление проектом ParkSpot API"
    )

    parser.add_argument(
        "command",
        choices=["check-db", "reset-db", "seed-db", "create-tables", "migrate"],
        help="Команда для выполнения"
    )

    args = parser.parse_args()

    # Выполнение команды
    commands = {
        "check-db": check_db,
        "reset-db": reset_db,
        "seed-db": seed_db,
        "create-tables": create_tables,
        "migrate": migrate,
    }

    commands[args.command]()


if __name__ == "__main__":
    main()
