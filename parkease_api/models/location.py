from parkease_api.models.base import db, generate_uuid, utcnow, isoformat

VEHICLE_TYPES = ('car', 'bike', 'bus', 'van', 'truck')

# Charge per 15-minute interval
DEFAULT_PRICING = {
    'car': 15,
    'bike': 10,
    'bus': 25,
    'van': 20,
    'truck': 22
}


class Location(db.Model):
    __tablename__ = 'locations'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    location_code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    address = db.Column(db.String(255), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    total_slots = db.Column(db.Integer, nullable=False, default=0)
    available_slots = db.Column(db.Integer, nullable=False, default=0)
    pricing = db.Column(db.JSON, nullable=False, default=lambda: dict(DEFAULT_PRICING))
    created_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    slots = db.relationship('Slot', backref='location', lazy=True)
    owner = db.relationship('User', foreign_keys=[created_by], lazy=True)

    def merge_pricing(self, pricing):
        # Reassign so the JSON column is flagged dirty
        merged = dict(self.pricing or {})
        merged.update(pricing)
        self.pricing = merged

    def to_dict(self):
        return {
            'id': self.id,
            'location_code': self.location_code,
            'name': self.name,
            'address': self.address,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'total_slots': self.total_slots,
            'available_slots': self.available_slots,
            'pricing': self.pricing,
            'created_by': self.owner.to_summary() if self.owner else self.created_by,
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at)
        }

    def __repr__(self):
        return f'<Location {self.location_code} {self.available_slots}/{self.total_slots}>'
