from flask import Blueprint, jsonify
from parkease_api.db.db import db
from parkease_api.controllers.admin import admin_required, log_admin_action
from parkease_api.controllers.auth import current_caller
from parkease_api.models.location import Location, DEFAULT_PRICING, VEHICLE_TYPES
from parkease_api.services.errors import DuplicateIdentifier, InvalidInput, LocationNotFound
from parkease_api.services.transaction import transaction
from parkease_api.utils.request_parser import json_body, optional_string, require_strings

locations_bp = Blueprint('locations', __name__, url_prefix='/api/locations')


def get_location_or_404(location_id):
    location = db.session.get(Location, location_id)
    if not location:
        raise LocationNotFound()
    return location


def _validate_pricing(pricing):
    if not isinstance(pricing, dict):
        raise InvalidInput('Pricing must be an object keyed by vehicle type')
    for vehicle_type, rate in pricing.items():
        if vehicle_type not in VEHICLE_TYPES:
            raise InvalidInput(f'Unsupported vehicle type: {vehicle_type}')
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate <= 0:
            raise InvalidInput(f'Invalid rate for {vehicle_type}')
    return pricing


def _coordinate(data, field):
    try:
        return float(data[field])
    except (KeyError, TypeError, ValueError):
        raise InvalidInput(f'Valid {field} is required')


@locations_bp.route('', methods=['GET'])
def get_locations():
    locations = Location.query.filter_by(is_active=True).order_by(Location.created_at.desc()).all()
    return jsonify([location.to_dict() for location in locations]), 200


@locations_bp.route('/<location_id>', methods=['GET'])
def get_location(location_id):
    return jsonify(get_location_or_404(location_id).to_dict()), 200


@locations_bp.route('', methods=['POST'])
@admin_required
def create_location():
    data = json_body()

    require_strings(data, ['location_code', 'name', 'address'])

    pricing = dict(DEFAULT_PRICING)
    pricing.update(_validate_pricing(data.get('pricing') or {}))

    with transaction('create_location'):
        location_code = data['location_code'].strip()
        if Location.query.filter_by(location_code=location_code).first():
            raise DuplicateIdentifier('Location ID already exists')

        location = Location(
            location_code=location_code,
            name=data['name'].strip(),
            address=data['address'].strip(),
            latitude=_coordinate(data, 'latitude'),
            longitude=_coordinate(data, 'longitude'),
            pricing=pricing,
            created_by=current_caller().user_id
        )
        db.session.add(location)

    log_admin_action('create_location', {'location_id': location.id, 'location_code': location_code})
    return jsonify({'message': 'Location created successfully', 'location': location.to_dict()}), 201


@locations_bp.route('/<location_id>', methods=['PUT'])
@admin_required
def update_location(location_id):
    data = json_body()

    with transaction('update_location'):
        location = get_location_or_404(location_id)
        changes = {}

        for field in ['name', 'address']:
            if optional_string(data, field):
                changes[field] = {'old': getattr(location, field), 'new': data[field]}
                setattr(location, field, data[field])
        for field in ['latitude', 'longitude']:
            if data.get(field) is not None:
                setattr(location, field, _coordinate(data, field))
                changes[field] = 'updated'
        if data.get('pricing'):
            location.merge_pricing(_validate_pricing(data['pricing']))
            changes['pricing'] = data['pricing']
        if isinstance(data.get('is_active'), bool):
            location.is_active = data['is_active']
            changes['is_active'] = data['is_active']

    if changes:
        log_admin_action('update_location', {'location_id': location_id, 'changes': changes})
    return jsonify({'message': 'Location updated successfully', 'location': location.to_dict()}), 200


@locations_bp.route('/<location_id>/pricing', methods=['PATCH'])
@admin_required
def update_pricing(location_id):
    data = json_body()
    if not data.get('pricing'):
        return jsonify({'error': 'Pricing data is required'}), 400

    with transaction('update_pricing'):
        location = get_location_or_404(location_id)
        location.merge_pricing(_validate_pricing(data['pricing']))

    log_admin_action('update_pricing', {'location_id': location_id, 'pricing': data['pricing']})
    return jsonify({'message': 'Pricing updated successfully', 'location': location.to_dict()}), 200


@locations_bp.route('/<location_id>', methods=['DELETE'])
@admin_required
def delete_location(location_id):
    with transaction('delete_location'):
        location = get_location_or_404(location_id)
        # Soft delete
        location.is_active = False

    log_admin_action('delete_location', {'location_id': location_id})
    return jsonify({'message': 'Location deleted successfully'}), 200
