from typing import Optional, Tuple
from urllib.parse import quote

SPOT_LABEL = "My Parked Car"


def directions_url(
    latitude: float,
    longitude: float,
    platform: str = "web",
    origin: Optional[Tuple[float, float]] = None,
) -> str:
    """
    Ссылка на маршрут до машины.

    :param latitude: Широта места
    :param longitude: Долгота места
    :param platform: 'web', 'ios' или 'android'
    :param origin: Текущая позиция (lat, lng) - только для web
    :return: URL для открытия в картах
    :rtype: str
    """
    lat_lng = f"{latitude},{longitude}"

    if platform == "ios":
        return f"maps:0,0?q={quote(SPOT_LABEL)}@{lat_lng}"
    if platform == "android":
        return f"geo:0,0?q={lat_lng}({quote(SPOT_LABEL)})"
    if platform != "web":
        raise ValueError(f"Unknown platform: {platform}")

    if origin is None:
        return f"https://www.google.com/maps/dir/?api=1&destination={lat_lng}"
    return f"https://www.google.com/maps/dir/{origin[0]},{origin[1]}/{lat_lng}"
