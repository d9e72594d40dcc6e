from parkease_api.models.base import db, generate_uuid, utcnow, isoformat

BOOKING_STATUSES = ('upcoming', 'active', 'completed', 'cancelled', 'no-show')
PAYMENT_STATUSES = ('pending', 'completed', 'refunded')
TERMINAL_STATUSES = ('completed', 'cancelled')


class Booking(db.Model):
    __tablename__ = 'bookings'
    __table_args__ = (
        db.Index('ix_bookings_user_status', 'user_id', 'booking_status'),
        db.Index('ix_bookings_slot_start', 'slot_id', 'start_time'),
        db.Index('ix_bookings_location_date', 'location_id', 'booking_date'),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    booking_id = db.Column(db.String(40), unique=True, nullable=False)

    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    slot_id = db.Column(db.String(36), db.ForeignKey('slots.id'), nullable=False)
    location_id = db.Column(db.String(36), db.ForeignKey('locations.id'), nullable=False)

    vehicle_number = db.Column(db.String(20), nullable=False)
    vehicle_type = db.Column(db.String(20), nullable=False)

    # Scheduled window
    booking_date = db.Column(db.DateTime, nullable=False)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)

    # Timer window, populated once the user starts/stops parking
    actual_start_time = db.Column(db.DateTime, nullable=True)
    actual_end_time = db.Column(db.DateTime, nullable=True)
    duration = db.Column(db.Integer, nullable=False, default=0)  # minutes

    base_amount = db.Column(db.Float, nullable=False)
    total_amount = db.Column(db.Float, nullable=False)
    payment_status = db.Column(db.String(20), nullable=False, default='pending')
    payment_id = db.Column(db.String(40), nullable=True)

    booking_status = db.Column(db.String(20), nullable=False, default='upcoming')
    timer_started = db.Column(db.Boolean, nullable=False, default=False)
    timer_ended_at = db.Column(db.DateTime, nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    slot = db.relationship('Slot', foreign_keys=[slot_id], backref='bookings')
    location = db.relationship('Location', foreign_keys=[location_id], backref='bookings')

    @property
    def is_finalized(self):
        return self.booking_status in TERMINAL_STATUSES

    def to_dict(self, expand=True):
        data = {
            'id': self.id,
            'booking_id': self.booking_id,
            'user_id': self.user_id,
            'slot_id': self.slot_id,
            'location_id': self.location_id,
            'vehicle_number': self.vehicle_number,
            'vehicle_type': self.vehicle_type,
            'booking_date': isoformat(self.booking_date),
            'start_time': isoformat(self.start_time),
            'end_time': isoformat(self.end_time),
            'actual_start_time': isoformat(self.actual_start_time),
            'actual_end_time': isoformat(self.actual_end_time),
            'duration': self.duration,
            'base_amount': self.base_amount,
            'total_amount': self.total_amount,
            'payment_status': self.payment_status,
            'payment_id': self.payment_id,
            'booking_status': self.booking_status,
            'timer_started': self.timer_started,
            'timer_ended_at': isoformat(self.timer_ended_at),
            'cancellation_reason': self.cancellation_reason,
            'cancelled_at': isoformat(self.cancelled_at),
            'created_at': isoformat(self.created_at)
        }
        if expand:
            data['slot'] = self.slot.to_dict() if self.slot else None
            data['location'] = self.location.to_dict() if self.location else None
            data['user'] = self.user.to_summary() if self.user else None
        return data

    def __repr__(self):
        return f'<Booking {self.booking_id} - {self.booking_status}>'
