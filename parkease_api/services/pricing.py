import math

from parkease_api.services.errors import InvalidWindow

BILLING_INTERVAL_MINUTES = 15
DEFAULT_RATE = 15


def rate_for(pricing, vehicle_type):
    """Per-interval rate for a vehicle type, falling back to the default rate."""
    rate = (pricing or {}).get(vehicle_type)
    return rate if rate else DEFAULT_RATE


def elapsed_minutes(start, end):
    return math.ceil((end - start).total_seconds() / 60)


def billable_intervals(duration_minutes):
    # Partial intervals round up: 16 minutes bills as 2
    return math.ceil(duration_minutes / BILLING_INTERVAL_MINUTES)


def compute_charge(rate_per_interval, start, end):
    """
    Price a window at a per-interval rate.

    Returns ``(duration_minutes, total_amount)``. Raises InvalidWindow when the
    window is empty or reversed.
    """
    if end <= start:
        raise InvalidWindow()

    duration = elapsed_minutes(start, end)
    return duration, rate_per_interval * billable_intervals(duration)
