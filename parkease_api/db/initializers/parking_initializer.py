# db/initializers/parking_initializer.py
import logging
from parkease_api.models.location import Location, DEFAULT_PRICING
from parkease_api.models.users import User
from parkease_api.db.db import db
from parkease_api.services import inventory

logger = logging.getLogger(__name__)

DEMO_LOCATIONS = [
    {'location_code': 'LOC001', 'name': 'City Centre Garage', 'address': '1 Market Street',
     'latitude': 12.9716, 'longitude': 77.5946, 'sections': {'A': 10, 'B': 6}},
    {'location_code': 'LOC002', 'name': 'Station Road Lot', 'address': '42 Station Road',
     'latitude': 12.9780, 'longitude': 77.5700, 'sections': {'C': 8}},
]


def initialize_parking_slots(admin_email, admin_password):
    """Seed demo locations and slots if the database has none yet."""
    if Location.query.count() > 0:
        logger.info("Locations already initialized")
        return 0

    admin = User.query.filter_by(email=admin_email).first()
    if not admin:
        admin = User(name='Administrator', email=admin_email, phone='0000000000', role='admin')
        admin.set_password(admin_password)
        db.session.add(admin)
        db.session.flush()

    created = 0
    for demo in DEMO_LOCATIONS:
        location = Location(
            location_code=demo['location_code'],
            name=demo['name'],
            address=demo['address'],
            latitude=demo['latitude'],
            longitude=demo['longitude'],
            pricing=dict(DEFAULT_PRICING),
            created_by=admin.id
        )
        db.session.add(location)
        db.session.flush()

        for section, count in demo['sections'].items():
            for i in range(1, count + 1):
                inventory.register_slot(
                    location,
                    slot_no=f'{section}{i:02d}',
                    latitude=demo['latitude'],
                    longitude=demo['longitude'],
                    vehicle_type='all'
                )
                created += 1

    db.session.commit()
    logger.info("Parking slots initialized successfully (%d slots)", created)
    return created
