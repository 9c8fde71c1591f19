# roofguard/services/form_validation.py
"""
Field validators for building and basin forms.

Raw form values arrive as strings; blank input means "not provided" and
yields None.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional
import math
import re

COORDINATES_INVALID_MESSAGE = "Coordonnées GPS invalides. Latitude: -90 à 90, Longitude: -180 à 180"
COORDINATES_INCOMPLETE_MESSAGE = "Vous devez fournir à la fois la latitude et la longitude"

MIN_YEAR = 1900
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NUMBER_PREFIX = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_INTEGER_PREFIX = re.compile(r"^[+-]?\d+")


@dataclass(frozen=True)
class CoordinatesResult:
    latitude: Optional[float]
    longitude: Optional[float]
    error: Optional[str] = None


def _is_blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def _parse_float(value: str) -> Optional[float]:
    # Leading numeric prefix, like a browser's parseFloat ("45.5 N" -> 45.5)
    match = _NUMBER_PREFIX.match(value.strip())
    if not match:
        return None
    number = float(match.group(0))
    return number if math.isfinite(number) else None


def _parse_in_range(value: Optional[str], low: float, high: float) -> Optional[float]:
    if _is_blank(value):
        return None
    number = _parse_float(value)
    if number is None or number < low or number > high:
        return None
    return number


def validate_latitude(value: Optional[str]) -> Optional[float]:
    """Latitude in [-90, 90], or None"""
    return _parse_in_range(value, -90, 90)


def validate_longitude(value: Optional[str]) -> Optional[float]:
    """Longitude in [-180, 180], or None"""
    return _parse_in_range(value, -180, 180)


def validate_coordinates(lat: Optional[str], lng: Optional[str]) -> CoordinatesResult:
    """
    Validate a GPS pair.

    Both values must be given together; one out of range or unparsable value
    invalidates the pair. Two blank values are accepted (no location).
    """
    latitude = validate_latitude(lat)
    longitude = validate_longitude(lng)

    if (not _is_blank(lat) and latitude is None) or (not _is_blank(lng) and longitude is None):
        return CoordinatesResult(None, None, COORDINATES_INVALID_MESSAGE)

    if (latitude is None) != (longitude is None):
        return CoordinatesResult(None, None, COORDINATES_INCOMPLETE_MESSAGE)

    return CoordinatesResult(latitude, longitude)


def validate_positive_number(value: Optional[str]) -> Optional[float]:
    """Non-negative number (surfaces, thicknesses), or None"""
    if _is_blank(value):
        return None
    number = _parse_float(value)
    if number is None or number < 0:
        return None
    return number


def validate_year(value: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Installation year between 1900 and next year, or None"""
    if _is_blank(value):
        return None
    match = _INTEGER_PREFIX.match(value.strip())
    if not match:
        return None

    year = int(match.group(0))
    current_year = (today or date.today()).year
    if year < MIN_YEAR or year > current_year + 1:
        return None
    return year


def validate_email(value: Optional[str]) -> bool:
    if _is_blank(value):
        return False
    return bool(EMAIL_PATTERN.match(value.strip()))
