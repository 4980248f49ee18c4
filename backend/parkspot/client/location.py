from dataclasses import dataclass
from typing import Optional


@dataclass
class Position:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class LocationProvider:
    """
    Источник геопозиции (GPS устройства, браузер и т.п.).

    Реализация должна бросать LocationPermissionDenied, если доступ запрещён,
    и LocationUnavailable при временной недоступности или таймауте.
    """

    def current_position(self) -> Position:
        raise NotImplementedError


class FixedLocationProvider(LocationProvider):
    """Заранее известная позиция: ручной ввод координат или CLI"""

    def __init__(self, latitude: float, longitude: float):
        self.position = Position(latitude=latitude, longitude=longitude)

    def current_position(self) -> Position:
        return self.position
