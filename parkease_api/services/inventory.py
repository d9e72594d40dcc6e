"""
Slot and location counter bookkeeping.

Every move of a slot into or out of ``available`` goes through this module and
is paired with a +/-1 on the owning location's ``available_slots``. Status
changes are conditional UPDATEs on the expected current status, so two callers
racing for the same slot cannot both win, and counter changes are single
``x = x + n`` statements that never read-modify-write in Python.

Nothing here commits; callers wrap these helpers in services.transaction.
"""
import logging

from parkease_api.models.base import db, utcnow
from parkease_api.models.location import Location
from parkease_api.models.slot import Slot
from parkease_api.services.errors import (
    Conflict, DuplicateIdentifier, InvalidInput, SlotInUse
)

logger = logging.getLogger(__name__)

ADMIN_STATUSES = ('available', 'maintenance')


def _adjust_counts(location_id, available_delta, total_delta=0):
    # Both counters move in one statement and must stay within 0 <= available <= total
    values = {Location.available_slots: Location.available_slots + available_delta}
    if total_delta:
        values[Location.total_slots] = Location.total_slots + total_delta

    updated = Location.query.filter(
        Location.id == location_id,
        Location.available_slots + available_delta >= 0,
        Location.available_slots + available_delta <= Location.total_slots + total_delta
    ).update(values, synchronize_session=False)
    if not updated:
        logger.warning("Counter drift on location %s: available_slots%+d total_slots%+d blocked",
                       location_id, available_delta, total_delta)
    return bool(updated)


def _transition(slot_id, from_status, values):
    values = dict(values)
    values[Slot.updated_at] = utcnow()
    return Slot.query.filter(
        Slot.id == slot_id,
        Slot.status == from_status,
        Slot.is_active.is_(True)
    ).update(values, synchronize_session=False)


def reserve_slot(slot, until):
    """Flip ``available -> booked``. Returns False if another caller got there first."""
    won = _transition(slot.id, 'available', {
        Slot.status: 'booked',
        Slot.next_available_time: until
    })
    if not won:
        return False

    _adjust_counts(slot.location_id, -1)
    logger.info("Slot %s reserved until %s", slot.id, until)
    return True


def release_slot(slot_id, location_id, now=None):
    """Flip ``booked -> available``; a slot that is no longer booked is left alone."""
    now = now or utcnow()
    released = _transition(slot_id, 'booked', {
        Slot.status: 'available',
        Slot.next_available_time: now
    })
    if not released:
        logger.warning("Slot %s was not booked at release time, counters unchanged", slot_id)
        return False

    _adjust_counts(location_id, +1)
    logger.info("Slot %s released", slot_id)
    return True


def push_back_slot(slot_id, until):
    """Move a held slot's next-available time after an extension."""
    return Slot.query.filter(Slot.id == slot_id, Slot.status == 'booked').update(
        {Slot.next_available_time: until, Slot.updated_at: utcnow()},
        synchronize_session=False
    )


def set_slot_status(slot, status):
    """Admin toggle between available and maintenance."""
    if status not in ADMIN_STATUSES:
        raise InvalidInput(f"Invalid status: {status}")
    if slot.status == 'booked':
        raise SlotInUse("Cannot change the status of a booked slot")
    if slot.status == status:
        return False

    if not _transition(slot.id, slot.status, {Slot.status: status}):
        raise Conflict("Slot status changed concurrently, reload and retry")

    _adjust_counts(slot.location_id, +1 if status == 'available' else -1)
    logger.info("Slot %s moved %s -> %s", slot.id, slot.status, status)
    return True


def register_slot(location, **fields):
    """Create a slot under a location and count it as available."""
    slot_no = fields['slot_no']
    if Slot.query.filter_by(slot_no=slot_no, location_id=location.id).first():
        raise DuplicateIdentifier("Slot number already exists for this location")

    slot = Slot(location_id=location.id, status='available', **fields)
    db.session.add(slot)
    db.session.flush()

    _adjust_counts(location.id, +1, total_delta=+1)
    return slot


def retire_slot(slot):
    """Soft-delete a slot that is not currently booked."""
    if slot.status == 'booked':
        raise SlotInUse("Cannot delete a booked slot")

    for status in ADMIN_STATUSES:
        if _transition(slot.id, status, {Slot.is_active: False}):
            break
    else:
        raise SlotInUse("Cannot delete a booked slot")

    _adjust_counts(slot.location_id, -1 if status == 'available' else 0, total_delta=-1)
    logger.info("Slot %s retired (was %s)", slot.id, status)
