from flask import Blueprint, jsonify, request
from parkease_api.controllers.admin import admin_required
from parkease_api.models.base import utcnow
from parkease_api.services import reporting
from parkease_api.utils.datetime_parser import parse_optional_datetime

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')


def _date_range():
    return (
        parse_optional_datetime(request.args.get('start_date'), 'start date'),
        parse_optional_datetime(request.args.get('end_date'), 'end date')
    )


@reports_bp.route('/monthly-usage', methods=['GET'])
@admin_required
def monthly_usage():
    """
    Usage summary for one calendar month

    Query Parameters:
    - year, month: default to the current month (month is 1-12)
    - location_id: optional filter
    """
    now = utcnow()
    year = request.args.get('year', now.year, type=int)
    month = request.args.get('month', now.month, type=int)
    return jsonify(reporting.monthly_usage(year, month, request.args.get('location_id'))), 200


@reports_bp.route('/slot-usage', methods=['GET'])
@admin_required
def slot_usage():
    start_date, end_date = _date_range()
    rows = reporting.slot_usage(request.args.get('location_id'), start_date, end_date)
    return jsonify({'slots': rows}), 200


@reports_bp.route('/revenue', methods=['GET'])
@admin_required
def revenue():
    start_date, end_date = _date_range()
    group_by = request.args.get('group_by', 'daily')
    series = reporting.revenue_report(request.args.get('location_id'), start_date, end_date, group_by)
    return jsonify({'group_by': group_by, 'revenue': series}), 200
