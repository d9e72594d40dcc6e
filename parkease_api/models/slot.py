from parkease_api.models.base import db, generate_uuid, utcnow, isoformat

SLOT_STATUSES = ('available', 'booked', 'maintenance')
SLOT_VEHICLE_TYPES = ('all', 'car', 'bike', 'bus', 'van', 'truck')


class Slot(db.Model):
    __tablename__ = 'slots'
    __table_args__ = (
        db.UniqueConstraint('slot_no', 'location_id', name='uq_slot_no_location'),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    slot_no = db.Column(db.String(20), nullable=False)
    location_id = db.Column(db.String(36), db.ForeignKey('locations.id'), nullable=False, index=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='available')  # 'available', 'booked', 'maintenance'
    vehicle_type = db.Column(db.String(20), nullable=False, default='all')
    next_available_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    is_active = db.Column(db.Boolean, nullable=False, default=True)  # Soft delete marker
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'slot_no': self.slot_no,
            'location_id': self.location_id,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'status': self.status,
            'vehicle_type': self.vehicle_type,
            'next_available_time': isoformat(self.next_available_time),
            'is_active': self.is_active
        }

    def __repr__(self):
        return f'<Slot {self.slot_no} - {self.status}>'
