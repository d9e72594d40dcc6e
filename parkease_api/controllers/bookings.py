from flask import Blueprint, request, jsonify, current_app
from parkease_api.controllers.auth import active_user_required, current_caller
from parkease_api.services.booking_workflow import BookingWorkflow
from parkease_api.utils.datetime_parser import parse_datetime
from parkease_api.utils.request_parser import json_body, optional_string, require_strings

bookings_bp = Blueprint('bookings', __name__, url_prefix='/api/bookings')


def get_workflow():
    return BookingWorkflow(extension_fee=current_app.config['EXTENSION_FEE'])


@bookings_bp.route('', methods=['POST'])
@active_user_required
def create_booking():
    data = json_body()
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    require_strings(data, ['slot_id', 'location_id', 'vehicle_number', 'vehicle_type'])
    for field in ['booking_date', 'start_time', 'end_time']:
        if not data.get(field):
            return jsonify({'error': f'Missing required field: {field}'}), 400

    booking = get_workflow().create_booking(
        current_caller(),
        slot_id=data['slot_id'],
        location_id=data['location_id'],
        vehicle_number=data['vehicle_number'],
        vehicle_type=data['vehicle_type'],
        booking_date=parse_datetime(data['booking_date'], 'booking date'),
        start_time=parse_datetime(data['start_time'], 'start time'),
        end_time=parse_datetime(data['end_time'], 'end time')
    )
    return jsonify({
        'message': 'Booking created successfully',
        'booking': booking.to_dict()
    }), 201


@bookings_bp.route('/my-bookings', methods=['GET'])
@active_user_required
def my_bookings():
    categorized = get_workflow().list_bookings_for_user(
        current_caller(),
        status=request.args.get('status')
    )
    return jsonify({
        bucket: [booking.to_dict() for booking in bookings]
        for bucket, bookings in categorized.items()
    }), 200


@bookings_bp.route('/<booking_id>', methods=['GET'])
@active_user_required
def get_booking(booking_id):
    booking = get_workflow().get_booking(current_caller(), booking_id)
    return jsonify(booking.to_dict()), 200


@bookings_bp.route('/<booking_id>/start-timer', methods=['POST'])
@active_user_required
def start_timer(booking_id):
    booking = get_workflow().start_timer(current_caller(), booking_id)
    return jsonify({
        'message': 'Timer started successfully',
        'booking': booking.to_dict()
    }), 200


@bookings_bp.route('/<booking_id>/stop-timer', methods=['POST'])
@active_user_required
def stop_timer(booking_id):
    booking = get_workflow().stop_timer(current_caller(), booking_id)
    return jsonify({
        'message': 'Timer stopped and slot released successfully',
        'booking': booking.to_dict()
    }), 200


@bookings_bp.route('/<booking_id>/extend', methods=['POST'])
@active_user_required
def extend_booking(booking_id):
    workflow = get_workflow()
    booking = workflow.extend_booking(current_caller(), booking_id)
    return jsonify({
        'message': f'Booking extended by 15 minutes for {workflow.extension_fee}',
        'booking': booking.to_dict(),
        'new_end_time': booking.end_time.isoformat(),
        'new_total_amount': booking.total_amount
    }), 200


@bookings_bp.route('/<booking_id>/cancel', methods=['POST'])
@active_user_required
def cancel_booking(booking_id):
    reason = optional_string(json_body(), 'reason')
    booking = get_workflow().cancel_booking(current_caller(), booking_id, reason=reason)
    return jsonify({
        'message': 'Booking cancelled successfully',
        'booking': booking.to_dict()
    }), 200


@bookings_bp.route('/<booking_id>', methods=['DELETE'])
@active_user_required
def delete_booking(booking_id):
    get_workflow().delete_booking(current_caller(), booking_id)
    return jsonify({'message': 'Booking deleted successfully'}), 200
