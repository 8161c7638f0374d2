"""Distances on the WGS-84 ellipsoid."""

from __future__ import annotations

import math

# WGS-84
SEMI_MAJOR_AXIS_M = 6378137.0
FLATTENING = 1 / 298.257223563
SEMI_MINOR_AXIS_M = (1 - FLATTENING) * SEMI_MAJOR_AXIS_M

SEMICIRCLES_PER_180_DEG = 2**31


def semicircles_to_degrees(semicircles: float) -> float:
    """Convert a FIT semicircle angle to degrees."""
    return semicircles * 180.0 / SEMICIRCLES_PER_180_DEG


def vincenty_distance(
    lat1_deg: float,
    lon1_deg: float,
    lat2_deg: float,
    lon2_deg: float,
    tolerance: float = 1e-12,
    max_iterations: int = 200,
) -> float:
    """Distance in metres between two points, using Vincenty's inverse formula.

    Coincident points are 0 m apart. For nearly antipodal points, where the
    iteration may not converge, the last iterate is used.
    """
    a = SEMI_MAJOR_AXIS_M
    b = SEMI_MINOR_AXIS_M
    f = FLATTENING

    u1 = math.atan((1 - f) * math.tan(math.radians(lat1_deg)))
    u2 = math.atan((1 - f) * math.tan(math.radians(lat2_deg)))
    big_l = math.radians(lon2_deg - lon1_deg)
    sin_u1, cos_u1 = math.sin(u1), math.cos(u1)
    sin_u2, cos_u2 = math.sin(u2), math.cos(u2)

    lam = big_l
    for _ in range(max_iterations):
        sin_lam, cos_lam = math.sin(lam), math.cos(lam)
        sin_sigma = math.hypot(cos_u2 * sin_lam, cos_u1 * sin_u2 - sin_u1 * cos_u2 * cos_lam)
        if sin_sigma == 0:
            return 0.0
        cos_sigma = sin_u1 * sin_u2 + cos_u1 * cos_u2 * cos_lam
        sigma = math.atan2(sin_sigma, cos_sigma)
        sin_alpha = cos_u1 * cos_u2 * sin_lam / sin_sigma
        cos2_alpha = 1 - sin_alpha**2
        # equatorial line
        cos_2sigma_m = cos_sigma - 2 * sin_u1 * sin_u2 / cos2_alpha if cos2_alpha else 0.0
        c = f / 16 * cos2_alpha * (4 + f * (4 - 3 * cos2_alpha))
        prev_lam = lam
        lam = big_l + (1 - c) * f * sin_alpha * (
            sigma + c * sin_sigma * (cos_2sigma_m + c * cos_sigma * (-1 + 2 * cos_2sigma_m**2))
        )
        if abs(lam - prev_lam) < tolerance:
            break

    u_sq = cos2_alpha * (a**2 - b**2) / b**2
    big_a = 1 + u_sq / 16384 * (4096 + u_sq * (-768 + u_sq * (320 - 175 * u_sq)))
    big_b = u_sq / 1024 * (256 + u_sq * (-128 + u_sq * (74 - 47 * u_sq)))
    delta_sigma = big_b * sin_sigma * (
        cos_2sigma_m
        + big_b / 4 * (
            cos_sigma * (-1 + 2 * cos_2sigma_m**2)
            - big_b / 6 * cos_2sigma_m * (-3 + 4 * sin_sigma**2) * (-3 + 4 * cos_2sigma_m**2)
        )
    )
    return b * big_a * (sigma - delta_sigma)
