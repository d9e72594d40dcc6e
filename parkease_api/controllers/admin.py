from flask import Blueprint, request, jsonify
from parkease_api.db.db import db
from functools import wraps
from flask_jwt_extended import current_user
from parkease_api.controllers.auth import active_user_required, current_caller
from parkease_api.models.users import User, ROLES
from parkease_api.models.booking import Booking
from parkease_api.models.system_logs import SystemLog
from parkease_api.services import reporting
from parkease_api.services.booking_workflow import admin_list_bookings, release_held_slots
from parkease_api.services.errors import BookingNotFound, Forbidden, InvalidInput, UserNotFound
from parkease_api.services.transaction import transaction
from parkease_api.utils.datetime_parser import parse_optional_datetime

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def log_admin_action(action, details=None):
    """Helper function to log admin actions"""
    log = SystemLog(
        log_type='admin_action',
        action=action,
        details=details,
        user_id=current_user.id,
        ip_address=request.remote_addr
    )
    db.session.add(log)
    db.session.commit()


def admin_required(f):
    @wraps(f)
    @active_user_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            return jsonify({'error': 'Access denied. Admin privileges required.'}), 403
        return f(*args, **kwargs)
    return decorated_function


@admin_bp.route('/bookings', methods=['GET'])
@admin_required
def get_bookings():
    bookings = admin_list_bookings(
        location_id=request.args.get('location_id'),
        status=request.args.get('status'),
        slot_id=request.args.get('slot_id'),
        start_date=parse_optional_datetime(request.args.get('start_date'), 'start date'),
        end_date=parse_optional_datetime(request.args.get('end_date'), 'end date')
    )
    return jsonify([booking.to_dict() for booking in bookings]), 200


@admin_bp.route('/bookings/<booking_id>', methods=['DELETE'])
@admin_required
def delete_booking(booking_id):
    with transaction('admin_delete_booking'):
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise BookingNotFound()
        code = booking.booking_id
        # A held slot must be handed back before its booking disappears
        release_held_slots([booking])
        db.session.delete(booking)

    log_admin_action('delete_booking', {'booking_id': code})
    return jsonify({'message': 'Booking deleted successfully'}), 200


@admin_bp.route('/users', methods=['GET'])
@admin_required
def get_users():
    query = User.query
    role = request.args.get('role')
    is_active = request.args.get('is_active')

    if role:
        if role not in ROLES:
            raise InvalidInput(f"Invalid role: {role}")
        query = query.filter_by(role=role)
    if is_active is not None:
        query = query.filter_by(is_active=is_active.lower() == 'true')

    users = query.order_by(User.created_at.desc()).all()
    return jsonify([user.to_dict() for user in users]), 200


@admin_bp.route('/users/<user_id>', methods=['GET'])
@admin_required
def get_user_details(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFound()

    bookings = Booking.query.filter_by(user_id=user_id).order_by(Booking.created_at.desc()).all()
    counts = reporting.booking_counts(bookings)
    stats = {
        'total_bookings': counts['total'],
        'completed_bookings': counts['completed'],
        'cancelled_bookings': counts['cancelled'],
        'total_spent': sum(b.total_amount for b in bookings if b.payment_status == 'completed')
    }
    return jsonify({
        'user': user.to_dict(),
        'bookings': [booking.to_dict(expand=False) for booking in bookings],
        'stats': stats
    }), 200


@admin_bp.route('/users/<user_id>/toggle-status', methods=['PATCH'])
@admin_required
def toggle_user_status(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFound()
    if user.id == current_caller().user_id:
        raise Forbidden('Cannot deactivate your own account')

    user.is_active = not user.is_active
    db.session.commit()

    log_admin_action('toggle_user_status', {'user_id': user.id, 'is_active': user.is_active})
    state = 'activated' if user.is_active else 'deactivated'
    return jsonify({'message': f'User {state} successfully', 'user': user.to_dict()}), 200


@admin_bp.route('/users/<user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    with transaction('delete_user'):
        user = db.session.get(User, user_id)
        if not user:
            raise UserNotFound()
        if user.is_admin:
            raise Forbidden('Cannot delete admin users')

        email = user.email
        bookings = Booking.query.filter_by(user_id=user_id).all()
        release_held_slots(bookings)
        for booking in bookings:
            db.session.delete(booking)
        db.session.delete(user)

    log_admin_action('delete_user', {'user_id': user_id, 'email': email, 'bookings_removed': len(bookings)})
    return jsonify({'message': 'User and associated bookings deleted successfully'}), 200


@admin_bp.route('/statistics/dashboard', methods=['GET'])
@admin_required
def dashboard_statistics():
    stats = reporting.dashboard_statistics(
        location_id=request.args.get('location_id'),
        period=request.args.get('period', 'daily')
    )
    return jsonify(stats), 200


@admin_bp.route('/statistics/revenue-comparison', methods=['GET'])
@admin_required
def revenue_comparison():
    return jsonify(reporting.revenue_comparison(location_id=request.args.get('location_id'))), 200


@admin_bp.route('/statistics/peak-hours', methods=['GET'])
@admin_required
def peak_hours():
    days = request.args.get('days', 7, type=int)
    return jsonify(reporting.peak_hour_analysis(location_id=request.args.get('location_id'), days=days)), 200


@admin_bp.route('/logs', methods=['GET'])
@admin_required
def get_system_logs():
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', 50, type=int)
    log_type = request.args.get('type')
    start_date = parse_optional_datetime(request.args.get('start_date'), 'start date')
    end_date = parse_optional_datetime(request.args.get('end_date'), 'end date')

    query = SystemLog.query

    if log_type:
        query = query.filter_by(log_type=log_type)
    if start_date:
        query = query.filter(SystemLog.timestamp >= start_date)
    if end_date:
        query = query.filter(SystemLog.timestamp <= end_date)

    logs = query.order_by(SystemLog.timestamp.desc()).paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'logs': [log.to_dict() for log in logs.items],
        'total': logs.total,
        'pages': logs.pages,
        'current_page': logs.page
    }), 200
