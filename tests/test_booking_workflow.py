"""
Booking workflow tests

Drives the engine directly (no HTTP) with a fixed clock and checks the
booking, slot and location stay in step through every transition.
"""

import os
import shutil
import tempfile
import threading
import unittest
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import patch

from parkease_api.db.db import db
from parkease_api.manage import create_app
from parkease_api.models.booking import Booking
from parkease_api.models.location import Location
from parkease_api.models.slot import Slot
from parkease_api.models.users import User
from parkease_api.services import inventory
from parkease_api.services.booking_workflow import (
    BookingWorkflow, Caller, categorize_for_user, generate_booking_id
)
from parkease_api.services.errors import (
    AlreadyCompleted, AlreadyFinalized, BookingNotFound, CannotCancelAfterStart, Conflict,
    Forbidden, InvalidInput, LocationNotFound, NotFinalized, SlotUnavailable,
    TimerAlreadyStarted, TimerNotStarted, TooEarly
)
from tests.base import NOW, TEST_CONFIG, ParkEaseTestCase


class TestCreateBooking(ParkEaseTestCase):
    """Booking creation"""

    def test_create_prices_and_reserves(self):
        """Test a 31-minute car booking costs 45 and takes the slot"""
        booking = self.book(minutes=31)

        self.assertEqual(booking.duration, 31)
        self.assertEqual(booking.base_amount, 15)
        self.assertEqual(booking.total_amount, 45)
        self.assertEqual(booking.booking_status, 'upcoming')
        self.assertEqual(booking.payment_status, 'completed')
        self.assertTrue(booking.payment_id.startswith('PAY'))
        self.assertEqual(booking.vehicle_number, 'KA01AB1234')
        self.assertFalse(booking.timer_started)

        slot = self.slot_row()
        self.assertEqual(slot.status, 'booked')
        self.assertEqual(slot.next_available_time, booking.end_time)
        self.assertEqual(self.location_row().available_slots, 1)
        self.assertEqual(self.location_row().total_slots, 2)

    def test_booking_ids_are_unique(self):
        """Test generated identifiers do not repeat"""
        ids = {generate_booking_id() for _ in range(500)}
        self.assertEqual(len(ids), 500)
        self.assertTrue(all(i.startswith('BK') for i in ids))

    def test_booked_slot_is_unavailable(self):
        """Test a second booking for the same slot conflicts"""
        self.book()
        with self.assertRaises(SlotUnavailable):
            self.book(caller=self.other_caller)
        self.assertEqual(Booking.query.count(), 1)
        self.assertEqual(self.location_row().available_slots, 1)

    def test_stale_read_loses_the_race(self):
        """Test a caller that saw the slot available before a competitor booked it gets SlotUnavailable"""
        stale = SimpleNamespace(id=self.slot_id, location_id=self.location_id,
                                is_active=True, status='available')
        self.book()

        real_get = db.session.get

        def get(model, ident, **kwargs):
            if model is Slot:
                return stale
            return real_get(model, ident, **kwargs)

        with patch.object(db.session, 'get', side_effect=get):
            with self.assertRaises(Conflict):
                self.book(caller=self.other_caller)

        self.assertEqual(Booking.query.count(), 1)
        self.assertEqual(self.slot_row().status, 'booked')
        self.assertEqual(self.location_row().available_slots, 1)

    def test_unknown_vehicle_type(self):
        with self.assertRaises(InvalidInput):
            self.book(vehicle_type='spaceship')

    def test_non_string_fields(self):
        """Test wrongly typed inputs fail as InvalidInput before touching the store"""
        start = NOW + timedelta(minutes=30)
        window = dict(booking_date=start, start_time=start, end_time=start + timedelta(hours=1))
        cases = (
            dict(slot_id=self.slot_id, location_id=self.location_id, vehicle_number=1234, vehicle_type='car'),
            dict(slot_id={'a': 1}, location_id=self.location_id, vehicle_number='KA01', vehicle_type='car'),
            dict(slot_id=self.slot_id, location_id=7, vehicle_number='KA01', vehicle_type='car'),
            dict(slot_id=self.slot_id, location_id=self.location_id, vehicle_number='KA01', vehicle_type=['car']),
        )
        for fields in cases:
            with self.assertRaises(InvalidInput):
                self.workflow.create_booking(self.caller, **fields, **window)
        self.assertEqual(Booking.query.count(), 0)
        self.assertEqual(self.location_row().available_slots, 2)

    def test_invalid_window_leaves_slot_free(self):
        """Test a reversed window is rejected before anything is written"""
        with self.assertRaises(InvalidInput):
            self.book(minutes=-10)
        self.assertEqual(self.slot_row().status, 'available')
        self.assertEqual(self.location_row().available_slots, 2)

    def test_inactive_location(self):
        self.location_row().is_active = False
        db.session.commit()
        with self.assertRaises(LocationNotFound):
            self.book()
        self.assertEqual(self.slot_row().status, 'available')

    def test_slot_in_maintenance(self):
        self.slot_row().status = 'maintenance'
        db.session.commit()
        with self.assertRaises(SlotUnavailable):
            self.book()

    def test_missing_slot(self):
        with self.assertRaises(SlotUnavailable):
            self.book(slot_id='does-not-exist')


class TestTimerLifecycle(ParkEaseTestCase):
    """start_timer / stop_timer / extend_booking"""

    def setUp(self):
        super().setUp()
        # Window 09:50-10:50 so the fixed clock (10:00) is inside it
        self.booking = self.book(start=NOW - timedelta(minutes=10), minutes=60)
        self.booking_id = self.booking.id

    def test_full_lifecycle_releases_slot(self):
        """Test create, start, stop ends completed with the slot handed back"""
        booking = self.workflow.start_timer(self.caller, self.booking_id)
        self.assertEqual(booking.booking_status, 'active')
        self.assertTrue(booking.timer_started)
        self.assertEqual(booking.actual_start_time, NOW)

        stop_at = NOW + timedelta(minutes=22, seconds=30)
        booking = self.workflow.stop_timer(self.caller, self.booking_id, now=stop_at)

        self.assertEqual(booking.booking_status, 'completed')
        self.assertEqual(booking.actual_end_time, stop_at)
        self.assertEqual(booking.timer_ended_at, stop_at)
        self.assertEqual(booking.duration, 23)
        # Charge stays as booked
        self.assertEqual(booking.total_amount, 60)

        slot = self.slot_row()
        self.assertEqual(slot.status, 'available')
        self.assertEqual(slot.next_available_time, stop_at)
        self.assertEqual(self.location_row().available_slots, 2)

    def test_start_before_window(self):
        """Test the timer cannot start before the scheduled start"""
        with self.assertRaises(TooEarly):
            self.workflow.start_timer(self.caller, self.booking_id, now=NOW - timedelta(minutes=30))

    def test_start_twice(self):
        self.workflow.start_timer(self.caller, self.booking_id)
        with self.assertRaises(TimerAlreadyStarted):
            self.workflow.start_timer(self.caller, self.booking_id)

    def test_only_owner_controls_timer(self):
        with self.assertRaises(Forbidden):
            self.workflow.start_timer(self.other_caller, self.booking_id)
        with self.assertRaises(Forbidden):
            self.workflow.start_timer(self.admin_caller, self.booking_id)

    def test_stop_without_start(self):
        with self.assertRaises(TimerNotStarted):
            self.workflow.stop_timer(self.caller, self.booking_id)

    def test_stop_twice_does_not_double_release(self):
        """Test a repeated stop is refused and the counter moves only once"""
        self.workflow.start_timer(self.caller, self.booking_id)
        self.workflow.stop_timer(self.caller, self.booking_id)
        with self.assertRaises(AlreadyCompleted):
            self.workflow.stop_timer(self.caller, self.booking_id)
        self.assertEqual(self.location_row().available_slots, 2)

    def test_extend_adds_flat_fee(self):
        """Test extending a 45 booking by one unit yields 55 and +15 minutes"""
        booking = self.book(slot_id=self.spare_slot_id, start=NOW - timedelta(minutes=1), minutes=31)
        self.assertEqual(booking.total_amount, 45)
        old_end = booking.end_time

        self.workflow.start_timer(self.caller, booking.id)
        booking = self.workflow.extend_booking(self.caller, booking.id)

        self.assertEqual(booking.total_amount, 55)
        self.assertEqual(booking.end_time, old_end + timedelta(minutes=15))
        self.assertEqual(booking.duration, 46)
        self.assertEqual(self.slot_row(self.spare_slot_id).next_available_time, booking.end_time)

    def test_extend_before_start(self):
        with self.assertRaises(Conflict):
            self.workflow.extend_booking(self.caller, self.booking_id)

    def test_extend_completed(self):
        self.workflow.start_timer(self.caller, self.booking_id)
        self.workflow.stop_timer(self.caller, self.booking_id)
        with self.assertRaises(AlreadyCompleted):
            self.workflow.extend_booking(self.caller, self.booking_id)

    def test_unknown_booking(self):
        with self.assertRaises(BookingNotFound):
            self.workflow.start_timer(self.caller, 'missing')


class TestCancelAndDelete(ParkEaseTestCase):
    """cancel_booking / delete_booking"""

    def setUp(self):
        super().setUp()
        self.booking_id = self.book().id

    def test_cancel_restores_counters(self):
        """Test cancelling before start frees the slot and refunds"""
        before = 2
        booking = self.workflow.cancel_booking(self.caller, self.booking_id)

        self.assertEqual(booking.booking_status, 'cancelled')
        self.assertEqual(booking.payment_status, 'refunded')
        self.assertEqual(booking.cancellation_reason, 'User cancelled')
        self.assertEqual(booking.cancelled_at, NOW)
        self.assertEqual(self.slot_row().status, 'available')
        self.assertEqual(self.location_row().available_slots, before)

    def test_cancel_with_reason(self):
        booking = self.workflow.cancel_booking(self.caller, self.booking_id, reason='Plans changed')
        self.assertEqual(booking.cancellation_reason, 'Plans changed')

    def test_cancel_after_start(self):
        """Test a started booking cannot be cancelled"""
        self.workflow.start_timer(self.caller, self.booking_id, now=NOW + timedelta(hours=1))
        with self.assertRaises(Conflict):
            self.workflow.cancel_booking(self.caller, self.booking_id)
        with self.assertRaises(CannotCancelAfterStart):
            self.workflow.cancel_booking(self.caller, self.booking_id)
        self.assertEqual(self.slot_row().status, 'booked')

    def test_cancel_twice(self):
        self.workflow.cancel_booking(self.caller, self.booking_id)
        with self.assertRaises(AlreadyFinalized):
            self.workflow.cancel_booking(self.caller, self.booking_id)
        self.assertEqual(self.location_row().available_slots, 2)

    def test_cancel_by_other_user(self):
        with self.assertRaises(Forbidden):
            self.workflow.cancel_booking(self.other_caller, self.booking_id)

    def test_start_after_cancel(self):
        self.workflow.cancel_booking(self.caller, self.booking_id)
        with self.assertRaises(AlreadyFinalized):
            self.workflow.start_timer(self.caller, self.booking_id, now=NOW + timedelta(hours=1))

    def test_delete_upcoming(self):
        """Test only finalized bookings can be deleted"""
        with self.assertRaises(AlreadyFinalized):
            self.workflow.delete_booking(self.caller, self.booking_id)
        with self.assertRaises(NotFinalized):
            self.workflow.delete_booking(self.admin_caller, self.booking_id)

    def test_delete_cancelled_by_owner(self):
        self.workflow.cancel_booking(self.caller, self.booking_id)
        self.assertTrue(self.workflow.delete_booking(self.caller, self.booking_id))
        self.assertIsNone(db.session.get(Booking, self.booking_id))
        # Slot and location were already settled at cancellation
        self.assertEqual(self.location_row().available_slots, 2)

    def test_delete_by_admin_and_stranger(self):
        self.workflow.cancel_booking(self.caller, self.booking_id)
        with self.assertRaises(Forbidden):
            self.workflow.delete_booking(self.other_caller, self.booking_id)
        self.workflow.delete_booking(self.admin_caller, self.booking_id)
        self.assertEqual(Booking.query.count(), 0)


class TestConcurrentCreate(unittest.TestCase):
    """Parallel creates for one slot against a file-backed database"""

    THREADS = 8

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.app = create_app(dict(
            TEST_CONFIG,
            SQLALCHEMY_DATABASE_URI=f"sqlite:///{os.path.join(self.tmpdir, 'race.db')}",
            SQLALCHEMY_ENGINE_OPTIONS={'connect_args': {'timeout': 30, 'check_same_thread': False}}
        ))
        with self.app.app_context():
            db.create_all()
            self.user_ids = []
            for i in range(self.THREADS):
                user = User(name=f'Driver {i}', email=f'driver{i}@example.com', phone='5550000')
                user.set_password('secret123')
                db.session.add(user)
                db.session.flush()
                self.user_ids.append(user.id)

            location = Location(location_code='RACE', name='Race Lot', address='1 Race Road',
                                latitude=0.0, longitude=0.0, pricing={'car': 15},
                                created_by=self.user_ids[0])
            db.session.add(location)
            db.session.flush()
            slot = inventory.register_slot(location, slot_no='R01', latitude=0.0, longitude=0.0)
            db.session.commit()
            self.location_id = location.id
            self.slot_id = slot.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def attempt(self, user_id, barrier, outcomes):
        start = NOW + timedelta(minutes=30)
        with self.app.app_context():
            workflow = BookingWorkflow(extension_fee=10, clock=lambda: NOW)
            barrier.wait(timeout=30)
            try:
                workflow.create_booking(
                    Caller(user_id, 'user'),
                    slot_id=self.slot_id,
                    location_id=self.location_id,
                    vehicle_number=f'KA01{user_id[:4]}',
                    vehicle_type='car',
                    booking_date=start.replace(hour=0, minute=0),
                    start_time=start,
                    end_time=start + timedelta(hours=1)
                )
                outcomes.append('booked')
            except SlotUnavailable:
                outcomes.append('unavailable')
            finally:
                db.session.remove()

    def test_exactly_one_create_wins(self):
        """Test only one of many simultaneous creates for the same slot succeeds"""
        barrier = threading.Barrier(self.THREADS)
        outcomes = []
        threads = [threading.Thread(target=self.attempt, args=(user_id, barrier, outcomes))
                   for user_id in self.user_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(sorted(outcomes), ['booked'] + ['unavailable'] * (self.THREADS - 1))
        with self.app.app_context():
            self.assertEqual(Booking.query.count(), 1)
            self.assertEqual(db.session.get(Slot, self.slot_id).status, 'booked')
            location = db.session.get(Location, self.location_id)
            self.assertEqual((location.total_slots, location.available_slots), (1, 0))


class TestCategorize(unittest.TestCase):
    """categorize_for_user is a pure view over bookings"""

    def booking(self, status, start_offset, end_offset):
        return SimpleNamespace(
            booking_status=status,
            start_time=NOW + timedelta(minutes=start_offset),
            end_time=NOW + timedelta(minutes=end_offset)
        )

    def test_buckets(self):
        active = self.booking('active', -10, 50)
        upcoming = self.booking('upcoming', 30, 90)
        cancelled = self.booking('cancelled', 30, 90)
        completed = self.booking('completed', -10, 50)
        stale_upcoming = self.booking('upcoming', -120, -60)
        overdue_active = self.booking('active', -120, -60)
        in_window_upcoming = self.booking('upcoming', -5, 30)

        result = categorize_for_user(
            [active, upcoming, cancelled, completed, stale_upcoming, overdue_active, in_window_upcoming],
            NOW
        )

        self.assertEqual(result['current'], [active, overdue_active, in_window_upcoming])
        self.assertEqual(result['upcoming'], [upcoming])
        self.assertEqual(result['past'], [cancelled, completed, stale_upcoming])

    def test_empty(self):
        self.assertEqual(categorize_for_user([], NOW), {'past': [], 'current': [], 'upcoming': []})


class TestListForUser(ParkEaseTestCase):

    def test_lists_only_own_bookings(self):
        mine = self.book()
        self.book(caller=self.other_caller, slot_id=self.spare_slot_id)

        result = self.workflow.list_bookings_for_user(self.caller)
        self.assertEqual([b.id for b in result['upcoming']], [mine.id])
        self.assertEqual(result['past'], [])
        self.assertEqual(result['current'], [])

    def test_status_filter(self):
        booking_id = self.book().id
        self.workflow.cancel_booking(self.caller, booking_id)
        result = self.workflow.list_bookings_for_user(self.caller, status='upcoming')
        self.assertEqual(sum(len(v) for v in result.values()), 0)


if __name__ == '__main__':
    unittest.main()
