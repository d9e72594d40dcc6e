from flask import Blueprint, request, jsonify
from parkease_api.db.db import db
from parkease_api.controllers.admin import admin_required, log_admin_action
from parkease_api.controllers.locations import get_location_or_404
from parkease_api.models.base import utcnow
from parkease_api.models.slot import Slot, SLOT_VEHICLE_TYPES
from parkease_api.services import inventory
from parkease_api.services.errors import DuplicateIdentifier, InvalidInput, SlotNotFound
from parkease_api.services.transaction import transaction
from parkease_api.utils.datetime_parser import parse_datetime
from parkease_api.utils.request_parser import json_body, require_strings

slots_bp = Blueprint('slots', __name__, url_prefix='/api/slots')


def get_slot_or_404(slot_id):
    slot = db.session.get(Slot, slot_id)
    if not slot or not slot.is_active:
        raise SlotNotFound()
    return slot


def _vehicle_type(value):
    if value not in SLOT_VEHICLE_TYPES:
        raise InvalidInput(f'Unsupported vehicle type: {value}')
    return value


@slots_bp.route('/location/<location_id>', methods=['GET'])
def get_slots(location_id):
    slots = Slot.query.filter_by(location_id=location_id, is_active=True).order_by(Slot.slot_no).all()
    return jsonify([slot.to_dict() for slot in slots]), 200


@slots_bp.route('/location/<location_id>/available', methods=['GET'])
def get_available_slots(location_id):
    start_time = request.args.get('start_time') or request.args.get('startTime')
    start = parse_datetime(start_time, 'start time') if start_time else utcnow()

    slots = Slot.query.filter(
        Slot.location_id == location_id,
        Slot.status == 'available',
        Slot.is_active.is_(True),
        Slot.next_available_time <= start
    ).order_by(Slot.slot_no).all()
    return jsonify([slot.to_dict() for slot in slots]), 200


@slots_bp.route('', methods=['POST'])
@admin_required
def create_slot():
    data = json_body()

    if not str(data.get('slot_no') or '').strip():
        return jsonify({'error': 'Missing required field: slot_no'}), 400
    require_strings(data, ['location_id'])
    try:
        latitude = float(data['latitude'])
        longitude = float(data['longitude'])
    except (KeyError, TypeError, ValueError):
        return jsonify({'error': 'Valid latitude and longitude are required'}), 400

    with transaction('create_slot'):
        location = get_location_or_404(data['location_id'])
        slot = inventory.register_slot(
            location,
            slot_no=str(data['slot_no']).strip(),
            latitude=latitude,
            longitude=longitude,
            vehicle_type=_vehicle_type(data.get('vehicle_type') or 'car')
        )

    log_admin_action('create_slot', {'slot_id': slot.id, 'location_id': slot.location_id})
    return jsonify({'message': 'Slot created successfully', 'slot': slot.to_dict()}), 201


@slots_bp.route('/<slot_id>', methods=['PUT'])
@admin_required
def update_slot(slot_id):
    data = json_body()

    with transaction('update_slot'):
        slot = get_slot_or_404(slot_id)
        if data.get('slot_no'):
            slot_no = str(data['slot_no']).strip()
            clash = Slot.query.filter(Slot.location_id == slot.location_id, Slot.slot_no == slot_no,
                                      Slot.id != slot.id).first()
            if clash:
                raise DuplicateIdentifier('Slot number already exists for this location')
            slot.slot_no = slot_no
        for field in ['latitude', 'longitude']:
            if data.get(field) is not None:
                try:
                    setattr(slot, field, float(data[field]))
                except (TypeError, ValueError):
                    raise InvalidInput(f'Valid {field} is required')
        if data.get('vehicle_type'):
            slot.vehicle_type = _vehicle_type(data['vehicle_type'])
        if data.get('next_available_time'):
            slot.next_available_time = parse_datetime(data['next_available_time'], 'next available time')

    log_admin_action('update_slot', {'slot_id': slot_id, 'fields': sorted(data)})
    return jsonify({'message': 'Slot updated successfully', 'slot': slot.to_dict()}), 200


@slots_bp.route('/<slot_id>/status', methods=['PATCH'])
@admin_required
def update_slot_status(slot_id):
    data = json_body()
    status = data.get('status')

    with transaction('update_slot_status'):
        slot = get_slot_or_404(slot_id)
        old_status = slot.status
        inventory.set_slot_status(slot, status)

    log_admin_action('update_slot_status', {'slot_id': slot_id, 'old_status': old_status, 'new_status': status})
    return jsonify({'message': 'Slot status updated successfully', 'slot': slot.to_dict()}), 200


@slots_bp.route('/<slot_id>', methods=['DELETE'])
@admin_required
def delete_slot(slot_id):
    with transaction('delete_slot'):
        slot = get_slot_or_404(slot_id)
        inventory.retire_slot(slot)

    log_admin_action('delete_slot', {'slot_id': slot_id})
    return jsonify({'message': 'Slot deleted successfully'}), 200
