"""Zone index: maps coordinates to fixed geographic competition cells.

Zones are H3 hexagonal cells at a single resolution (7 by default,
roughly 5 km² per cell). Cell boundaries are global and never move,
so a photo's zone is fixed at creation.
"""

import math

import h3

from ephemap.core.config import settings
from ephemap.core.exceptions import ValidationException


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Reject coordinates that are not a point on the globe.

    Raises:
        ValidationException: If either value is non-finite or out of range.
    """
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise ValidationException(
            "Coordinates must be finite numbers",
            details={"latitude": latitude, "longitude": longitude},
        )
    if not -90.0 <= latitude <= 90.0:
        raise ValidationException(
            "Latitude must be between -90 and 90", details={"latitude": latitude}
        )
    if not -180.0 <= longitude <= 180.0:
        raise ValidationException(
            "Longitude must be between -180 and 180", details={"longitude": longitude}
        )


def zone_of(latitude: float, longitude: float, resolution: int = settings.ZONE_RESOLUTION) -> str:
    """Return the zone id containing a coordinate.

    Pure and deterministic. Callers validate the coordinates first;
    an out-of-range value here is a programming error.

    Args:
        latitude: WGS 84 latitude in degrees.
        longitude: WGS 84 longitude in degrees.
        resolution: H3 resolution of the zone grid.

    Returns:
        Hexadecimal H3 cell id.
    """
    return h3.latlng_to_cell(latitude, longitude, resolution)
