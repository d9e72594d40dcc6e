"""
Typed failures raised by the booking workflow and the admin services.

Every class carries the HTTP status the API answers with; the app factory
registers one handler for BookingError that renders ``{"error": message}``.
"""


class BookingError(Exception):
    status_code = 500
    message = 'Booking operation failed'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self):
        return {'error': self.message, 'code': type(self).__name__}


# 404
class NotFound(BookingError):
    status_code = 404
    message = 'Resource not found'


class BookingNotFound(NotFound):
    message = 'Booking not found'


class SlotNotFound(NotFound):
    message = 'Slot not found'


class LocationNotFound(NotFound):
    message = 'Location not found'


class UserNotFound(NotFound):
    message = 'User not found'


# 403
class Forbidden(BookingError):
    status_code = 403
    message = 'Access denied'


# 409
class Conflict(BookingError):
    status_code = 409
    message = 'Request conflicts with current state'


class SlotUnavailable(Conflict):
    message = 'Slot is not available'


class SlotInUse(Conflict):
    message = 'Slot is currently booked'


class TimerAlreadyStarted(Conflict):
    message = 'Timer already started'


class TimerNotStarted(Conflict):
    message = 'Timer not started'


class CannotCancelAfterStart(Conflict):
    message = 'Cannot cancel booking after timer has started'


class TooEarly(Conflict):
    message = 'Cannot start timer before booking start time'


class DuplicateIdentifier(Conflict):
    message = 'Identifier already exists'


# 400
class InvalidInput(BookingError):
    status_code = 400
    message = 'Invalid input'


class InvalidWindow(InvalidInput):
    message = 'End time must be after start time'


# 409, terminal bookings
class AlreadyFinalized(BookingError):
    status_code = 409
    message = 'Booking already completed or cancelled'


class AlreadyCompleted(AlreadyFinalized):
    message = 'Booking already completed'


class NotFinalized(AlreadyFinalized):
    message = 'Can only delete completed or cancelled bookings'


# 503
class Unavailable(BookingError):
    status_code = 503
    message = 'Storage is temporarily unavailable'
