"""
Booking Workflow Engine

Drives a booking through its lifecycle and keeps the slot and location in
step with it:

    upcoming --start_timer--> active --stop_timer--> completed
    upcoming --cancel-------> cancelled

``no-show`` is a valid stored status but no operation here produces it.

Every operation receives the caller explicitly as a ``Caller(user_id, role)``
and an optional ``now`` (naive UTC). Multi-entity writes happen inside one
database transaction; the slot reservation itself is a conditional update, so
concurrent creates for the same slot yield exactly one booking.
"""
import logging
import secrets
import time
from collections import namedtuple
from datetime import timedelta

from parkease_api.models.base import db, utcnow
from parkease_api.models.booking import Booking, TERMINAL_STATUSES
from parkease_api.models.location import Location, VEHICLE_TYPES
from parkease_api.models.slot import Slot
from parkease_api.services import inventory, pricing
from parkease_api.services.errors import (
    AlreadyCompleted, AlreadyFinalized, BookingNotFound, CannotCancelAfterStart,
    Forbidden, InvalidInput, LocationNotFound, NotFinalized, SlotUnavailable,
    TimerAlreadyStarted, TimerNotStarted, TooEarly
)
from parkease_api.services.transaction import transaction

logger = logging.getLogger(__name__)

Caller = namedtuple('Caller', ['user_id', 'role'])

EXTENSION_MINUTES = 15
DEFAULT_EXTENSION_FEE = 10
DEFAULT_CANCELLATION_REASON = 'User cancelled'

_BASE36 = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ'


def _millis():
    return int(time.time() * 1000)


def generate_booking_id():
    suffix = ''.join(secrets.choice(_BASE36) for _ in range(9))
    return f"BK{_millis()}{suffix}"


def generate_payment_id():
    return f"PAY{_millis()}{secrets.token_hex(3).upper()}"


def _load_booking(booking_id):
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound()
    return booking


def _load_owned(caller, booking_id):
    booking = _load_booking(booking_id)
    if booking.user_id != caller.user_id:
        raise Forbidden()
    return booking


class BookingWorkflow:
    """Lifecycle operations on bookings."""

    def __init__(self, extension_fee=DEFAULT_EXTENSION_FEE, clock=utcnow):
        self.extension_fee = extension_fee
        self.clock = clock

    def _now(self, now):
        return now or self.clock()

    def create_booking(self, caller, slot_id, location_id, vehicle_number, vehicle_type,
                       booking_date, start_time, end_time):
        if not isinstance(vehicle_type, str) or vehicle_type not in VEHICLE_TYPES:
            raise InvalidInput(f"Unsupported vehicle type: {vehicle_type}")
        if not isinstance(vehicle_number, str) or not vehicle_number.strip():
            raise InvalidInput("Vehicle number is required")
        # Identifiers reach the store as bind parameters
        if not isinstance(slot_id, str) or not isinstance(location_id, str):
            raise InvalidInput("Slot and location identifiers must be strings")

        with transaction('create_booking'):
            slot = db.session.get(Slot, slot_id)
            if not slot or not slot.is_active or slot.status != 'available':
                raise SlotUnavailable()

            location = db.session.get(Location, location_id)
            if not location or not location.is_active:
                raise LocationNotFound()
            if slot.location_id != location.id:
                raise InvalidInput("Slot does not belong to this location")

            base_amount = pricing.rate_for(location.pricing, vehicle_type)
            duration, total_amount = pricing.compute_charge(base_amount, start_time, end_time)

            # Lose the race here and the whole transaction rolls back
            if not inventory.reserve_slot(slot, end_time):
                raise SlotUnavailable()

            booking = Booking(
                booking_id=generate_booking_id(),
                user_id=caller.user_id,
                slot_id=slot.id,
                location_id=location.id,
                vehicle_number=vehicle_number.strip().upper(),
                vehicle_type=vehicle_type,
                booking_date=booking_date,
                start_time=start_time,
                end_time=end_time,
                duration=duration,
                base_amount=base_amount,
                total_amount=total_amount,
                payment_status='completed',
                payment_id=generate_payment_id(),
                booking_status='upcoming'
            )
            db.session.add(booking)

        logger.info("Booking %s created for slot %s (%d min, %s)",
                    booking.booking_id, slot_id, duration, total_amount)
        return booking

    def start_timer(self, caller, booking_id, now=None):
        now = self._now(now)
        with transaction('start_timer'):
            booking = _load_owned(caller, booking_id)
            if booking.timer_started:
                raise TimerAlreadyStarted()
            if booking.is_finalized:
                raise AlreadyFinalized()
            if now < booking.start_time:
                raise TooEarly()

            booking.timer_started = True
            booking.actual_start_time = now
            booking.booking_status = 'active'

        logger.info("Timer started for booking %s", booking.booking_id)
        return booking

    def stop_timer(self, caller, booking_id, now=None):
        now = self._now(now)
        with transaction('stop_timer'):
            booking = _load_owned(caller, booking_id)
            if not booking.timer_started:
                raise TimerNotStarted()
            if booking.booking_status == 'completed':
                raise AlreadyCompleted()

            booking.actual_end_time = now
            booking.timer_ended_at = now
            booking.booking_status = 'completed'
            # Actual elapsed time replaces the scheduled duration; the charge stays as booked
            if booking.actual_start_time:
                booking.duration = pricing.elapsed_minutes(booking.actual_start_time, now)

            inventory.release_slot(booking.slot_id, booking.location_id, now)

        logger.info("Timer stopped for booking %s after %d min", booking.booking_id, booking.duration)
        return booking

    def extend_booking(self, caller, booking_id):
        with transaction('extend_booking'):
            booking = _load_owned(caller, booking_id)
            if not booking.timer_started:
                raise TimerNotStarted("Timer must be started to extend booking")
            if booking.booking_status == 'completed':
                raise AlreadyCompleted("Cannot extend completed booking")

            booking.end_time = booking.end_time + timedelta(minutes=EXTENSION_MINUTES)
            booking.total_amount = booking.total_amount + self.extension_fee
            booking.duration = pricing.elapsed_minutes(booking.start_time, booking.end_time)
            inventory.push_back_slot(booking.slot_id, booking.end_time)

        logger.info("Booking %s extended to %s", booking.booking_id, booking.end_time)
        return booking

    def cancel_booking(self, caller, booking_id, reason=None, now=None):
        now = self._now(now)
        with transaction('cancel_booking'):
            booking = _load_owned(caller, booking_id)
            if booking.timer_started:
                raise CannotCancelAfterStart()
            if booking.booking_status in TERMINAL_STATUSES:
                raise AlreadyFinalized()

            booking.booking_status = 'cancelled'
            booking.payment_status = 'refunded'
            booking.cancellation_reason = reason or DEFAULT_CANCELLATION_REASON
            booking.cancelled_at = now

            inventory.release_slot(booking.slot_id, booking.location_id, now)

        logger.info("Booking %s cancelled: %s", booking.booking_id, booking.cancellation_reason)
        return booking

    def delete_booking(self, caller, booking_id):
        with transaction('delete_booking'):
            booking = _load_booking(booking_id)
            if booking.user_id != caller.user_id and caller.role != 'admin':
                raise Forbidden()
            if booking.booking_status not in TERMINAL_STATUSES:
                raise NotFinalized()
            code = booking.booking_id
            db.session.delete(booking)

        logger.info("Booking %s deleted by %s", code, caller.user_id)
        return True

    def get_booking(self, caller, booking_id):
        booking = _load_booking(booking_id)
        if booking.user_id != caller.user_id and caller.role != 'admin':
            raise Forbidden()
        return booking

    def list_bookings_for_user(self, caller, now=None, status=None):
        query = Booking.query.filter_by(user_id=caller.user_id)
        if status:
            query = query.filter_by(booking_status=status)
        bookings = query.order_by(Booking.created_at.desc()).all()
        return categorize_for_user(bookings, self._now(now))


def categorize_for_user(bookings, now):
    """
    Split bookings into past / current / upcoming as seen at ``now``.

    Derived on every read, never stored.
    """
    categorized = {'past': [], 'current': [], 'upcoming': []}
    for booking in bookings:
        status = booking.booking_status
        if status in TERMINAL_STATUSES:
            bucket = 'past'
        elif booking.end_time < now and status != 'active':
            bucket = 'past'
        elif status == 'active' or booking.start_time <= now <= booking.end_time:
            bucket = 'current'
        elif booking.start_time > now:
            bucket = 'upcoming'
        else:
            bucket = 'past'
        categorized[bucket].append(booking)
    return categorized


def admin_list_bookings(location_id=None, status=None, slot_id=None, start_date=None, end_date=None):
    query = Booking.query
    if location_id:
        query = query.filter(Booking.location_id == location_id)
    if slot_id:
        query = query.filter(Booking.slot_id == slot_id)
    if status:
        query = query.filter(Booking.booking_status == status)
    if start_date and end_date:
        query = query.filter(Booking.booking_date >= start_date, Booking.booking_date <= end_date)
    return query.order_by(Booking.created_at.desc()).all()


def release_held_slots(bookings, now=None):
    """Free the slots of non-terminal bookings that are about to be removed."""
    now = now or utcnow()
    for booking in bookings:
        if booking.booking_status in ('upcoming', 'active'):
            inventory.release_slot(booking.slot_id, booking.location_id, now)
