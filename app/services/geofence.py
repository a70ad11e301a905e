from __future__ import annotations

import enum
from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ApiError, ErrorCode
from app.models import GeofenceConfig
from app.settings import get_settings

EARTH_RADIUS_M = 6371000.0
SAMPLER_FAILURE_CODES = frozenset(
    {
        ErrorCode.GEOLOCATION_TIMEOUT,
        ErrorCode.GEOLOCATION_PERMISSION_DENIED,
        ErrorCode.GEOLOCATION_UNAVAILABLE,
    }
)


class GeofenceSettings(Protocol):
    center_lat: float
    center_lng: float
    radius_meters: float
    accuracy_threshold: float
    block_on_poor_accuracy: bool


class GeofenceReading(str, enum.Enum):
    INSIDE = "INSIDE"
    OUTSIDE = "OUTSIDE"
    UNTRUSTED = "UNTRUSTED"


@dataclass(frozen=True, slots=True)
class GeoSample:
    latitude: float
    longitude: float
    accuracy: float | None = None


@dataclass(frozen=True, slots=True)
class GeofenceResult:
    is_inside: bool
    distance: int
    accuracy_ok: bool


def sample_from_payload(
    latitude: float | None,
    longitude: float | None,
    accuracy: float | None,
) -> GeoSample | None:
    if latitude is None or longitude is None:
        return None
    return GeoSample(latitude=latitude, longitude=longitude, accuracy=accuracy)


# Browser GeolocationPositionError names and numeric codes.
_SAMPLER_ALIASES = {
    "1": ErrorCode.GEOLOCATION_PERMISSION_DENIED,
    "2": ErrorCode.GEOLOCATION_UNAVAILABLE,
    "3": ErrorCode.GEOLOCATION_TIMEOUT,
    "PERMISSION_DENIED": ErrorCode.GEOLOCATION_PERMISSION_DENIED,
    "POSITION_UNAVAILABLE": ErrorCode.GEOLOCATION_UNAVAILABLE,
    "UNAVAILABLE": ErrorCode.GEOLOCATION_UNAVAILABLE,
    "TIMEOUT": ErrorCode.GEOLOCATION_TIMEOUT,
}


def sampler_failure_error(raw_code: str) -> ApiError:
    """Error returned when the device reports it could not produce a position sample."""
    normalized = str(raw_code).strip().upper()
    code = _SAMPLER_ALIASES.get(normalized)
    if code is None and normalized in ErrorCode.__members__:
        code = ErrorCode[normalized]
    if code not in SAMPLER_FAILURE_CODES:
        return ApiError(
            status_code=400,
            code=ErrorCode.VALIDATION_ERROR,
            message="Código de geolocalización desconocido.",
        )
    return ApiError(status_code=400, code=code)


def distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    lat1_rad = radians(lat1)
    lng1_rad = radians(lng1)
    lat2_rad = radians(lat2)
    lng2_rad = radians(lng2)

    delta_lat = lat2_rad - lat1_rad
    delta_lng = lng2_rad - lng1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lng / 2) ** 2
    # Rounding can push a marginally above 1.0 for antipodal points.
    c = 2 * asin(sqrt(min(1.0, a)))
    return EARTH_RADIUS_M * c


def evaluate_geofence(sample: GeoSample | None, config: GeofenceSettings) -> GeofenceResult | None:
    if sample is None:
        return None

    distance_value = distance_m(sample.latitude, sample.longitude, config.center_lat, config.center_lng)
    accuracy_ok = sample.accuracy is not None and sample.accuracy <= config.accuracy_threshold
    return GeofenceResult(
        is_inside=distance_value <= config.radius_meters,
        distance=round(distance_value),
        accuracy_ok=accuracy_ok,
    )


def classify_reading(
    inside_geofence: bool | None,
    accuracy: float | None,
    config: GeofenceSettings | None,
) -> GeofenceReading:
    if inside_geofence is False:
        return GeofenceReading.OUTSIDE
    if (
        config is not None
        and config.block_on_poor_accuracy
        and (accuracy is None or accuracy > config.accuracy_threshold)
    ):
        return GeofenceReading.UNTRUSTED
    return GeofenceReading.INSIDE


def get_or_create_geofence_config(db: Session) -> GeofenceConfig:
    config = db.scalar(select(GeofenceConfig).order_by(GeofenceConfig.id.asc()))
    if config is not None:
        return config

    settings = get_settings()
    config = GeofenceConfig(
        center_lat=settings.default_geofence_center_lat,
        center_lng=settings.default_geofence_center_lng,
        radius_meters=settings.default_geofence_radius_meters,
        accuracy_threshold=settings.default_geofence_accuracy_threshold,
        block_on_poor_accuracy=False,
    )
    db.add(config)
    try:
        db.commit()
    except IntegrityError:
        # Another request seeded the singleton first.
        db.rollback()
        existing = db.scalar(select(GeofenceConfig).order_by(GeofenceConfig.id.asc()))
        if existing is None:
            raise
        return existing
    db.refresh(config)
    return config
