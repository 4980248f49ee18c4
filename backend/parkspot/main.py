"""
ParkSpot API - главный файл приложения.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from parkspot import config
from parkspot.schemas import (
    UserRegister,
    UserLogin,
    UserResponse,
    AuthResponse,
    MessageResponse,
    HealthResponse,
    ParkingSpotCreate,
    ParkingSpotResponse,
    TimerDataCreate,
    TimerDataResponse,
)
from parkspot.core.database import engine, Base, SessionLocal, get_db, utcnow
from parkspot.core.migrations import migrate_legacy_schema
from parkspot.core.models import User
from parkspot.core.security import create_access_token, get_current_user, get_current_user_id
from parkspot.core.logging_config import setup_logging
from parkspot.services import spot_service, timer_service, user_service


# ===== НАСТРОЙКА ЛОГИРОВАНИЯ =====
setup_logging()
logger = logging.getLogger(__name__)


# ============= LIFESPAN EVENT =============

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Выполняется при запуске и остановке приложения.

    Код ДО yield - выполняется при старте (startup).
    Код ПОСЛЕ yield - выполняется при остановке (shutdown).
    """
    # ===== STARTUP =====
    logger.info("🚗 ParkSpot API запускается...")

    # Старая схема parking_spots (без user_id) мигрирует до create_all
    migrate_legacy_schema(engine)
    Base.metadata.create_all(bind=engine)
    logger.info(f"База данных: {config.DATABASE_URL}")

    if config.CREATE_DEFAULT_ADMIN:
        db = SessionLocal()
        try:
            user_service.ensure_default_admin(db)
        finally:
            db.close()

    logger.info(f"Документация: http://{config.API_HOST}:{config.API_PORT}/docs")
    logger.info("API готов к работе!")

    yield  # Приложение работает

    # ===== SHUTDOWN =====
    logger.info("Остановка приложения...")
    engine.dispose()
    logger.info("Соединение с БД закрыто")


# ============= СОЗДАНИЕ ПРИЛОЖЕНИЯ =============

app = FastAPI(
    title="ParkSpot API",
    description="Remember where you parked: one spot and one countdown per user",
    version="1.0.0",
    lifespan=lifespan
)


# ============= CORS =============

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "PUT"],
    allow_headers=["*"],
)


# ============= ОБРАБОТКА ОШИБОК =============

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Ошибки валидации тела запроса - это 400, а не 422"""
    errors = exc.errors()
    fields = [".".join(str(part) for part in error["loc"] if part != "body") for error in errors]
    logger.warning("⚠️ Невалидный запрос %s %s: %s", request.method, request.url.path, fields)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": _validation_message(request.url.path, fields)},
    )


def _validation_message(path: str, fields) -> str:
    if path.endswith("/parking-spot"):
        return "Latitude and longitude are required"
    if path.endswith("/timer-data"):
        return "Timer end time is required"
    if path.startswith("/api/users") and "email" in fields:
        return "Invalid email address"
    if path.startswith("/api/users"):
        return "Username and password are required"
    return f"Invalid request: {', '.join(f for f in fields if f)}"


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Необработанная ошибка %s %s: %s", request.method, request.url.path, str(exc), exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ============= HEALTH CHECK =============

@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
async def health():
    """Проверка что API работает (клиент будит сервер этим запросом)"""
    logger.debug("Health check вызван")
    return HealthResponse(status="ok", timestamp=utcnow())


# ============= AUTH ENDPOINTS =============

@app.post("/api/users/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED, tags=["Authentication"])
def register(user_data: UserRegister, db: Session = Depends(get_db)):
    """Регистрация нового пользователя"""
    logger.info("🔄 Попытка регистрации: %s", user_data.username)

    try:
        new_user = user_service.create_user(
            db,
            username=user_data.username,
            password=user_data.password,
            email=user_data.email,
        )
    except user_service.UserAlreadyExists:
        logger.warning("⚠️ Username или email уже заняты: %s", user_data.username)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists"
        )
    except ValueError as e:
        logger.error("Ошибка хеширования пароля: %s", str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Server error")

    logger.info(f"Пользователь зарегистрирован: {new_user.username}")

    return AuthResponse(
        message="User registered successfully",
        user=UserResponse.model_validate(new_user),
        token=_issue_token(new_user),
    )


@app.post("/api/users/login", response_model=AuthResponse, tags=["Authentication"])
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    """Вход пользователя"""
    logger.info("🔄 Попытка входа: %s", credentials.username)

    user = user_service.authenticate(db, credentials.username, credentials.password)

    if user is None:
        logger.warning("⚠️ Неудачная попытка входа: %s", credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password"
        )

    logger.info(f"Пользователь вошёл: {user.username}")

    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        token=_issue_token(user),
    )


@app.get("/api/users/me", response_model=UserResponse, tags=["Authentication"])
def me(user: User = Depends(get_current_user)):
    return user


def _issue_token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "username": user.username})


# ============= PARKING SPOT ENDPOINTS =============

@app.get("/api/parking-spot", response_model=Optional[ParkingSpotResponse], tags=["Parking spot"])
def get_parking_spot(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Текущее место пользователя или null"""
    logger.debug(f"GET /api/parking-spot для пользователя {user_id}")
    return spot_service.get_current_spot(db, user_id)


@app.post("/api/parking-spot", response_model=ParkingSpotResponse, tags=["Parking spot"])
def save_parking_spot(
    spot: ParkingSpotCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Сохранить место. Предыдущее место пользователя заменяется"""
    logger.info(f"POST /api/parking-spot для пользователя {user_id}")
    return spot_service.save_spot(db, user_id, spot)


@app.delete("/api/parking-spot", response_model=MessageResponse, tags=["Parking spot"])
def delete_parking_spot(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    spot_service.delete_spot(db, user_id)
    return MessageResponse(message="Parking spot cleared successfully!")


# ============= TIMER ENDPOINTS =============

@app.get("/api/timer-data", response_model=Optional[TimerDataResponse], tags=["Timer"])
def get_timer_data(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Сохранённый таймер пользователя или null"""
    logger.debug(f"GET /api/timer-data для пользователя {user_id}")
    return timer_service.get_timer(db, user_id)


@app.post("/api/timer-data", response_model=TimerDataResponse, tags=["Timer"])
def save_timer_data(
    timer: TimerDataCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    logger.info(f"POST /api/timer-data для пользователя {user_id}")
    return timer_service.save_timer(db, user_id, timer)


@app.delete("/api/timer-data", response_model=MessageResponse, tags=["Timer"])
def delete_timer_data(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    timer_service.delete_timer(db, user_id)
    return MessageResponse(message="Timer data cleared successfully!")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("parkspot.main:app", host=config.API_HOST, port=config.API_PORT)
