"""
Revenue, occupancy and usage statistics.

The aggregate helpers are pure functions over a list of bookings already
fetched from the database; the query wrappers below them only select the
snapshot and never write.
"""
import calendar
from datetime import datetime, timedelta

import pandas as pd

from parkease_api.models.base import utcnow
from parkease_api.models.booking import Booking
from parkease_api.models.location import VEHICLE_TYPES
from parkease_api.models.slot import Slot
from parkease_api.services.errors import InvalidInput

PERIODS = ('daily', 'weekly', 'monthly')
MAX_LOOKBACK_DAYS = 3650


def revenue_summary(bookings):
    by_vehicle_type = {}
    total = 0
    for booking in bookings:
        total += booking.total_amount
        by_vehicle_type[booking.vehicle_type] = by_vehicle_type.get(booking.vehicle_type, 0) + booking.total_amount
    return {'total': total, 'by_vehicle_type': by_vehicle_type}


def booking_counts(bookings):
    counts = {'total': len(bookings), 'completed': 0, 'active': 0, 'cancelled': 0}
    for booking in bookings:
        if booking.booking_status in counts:
            counts[booking.booking_status] += 1
    return counts


def occupancy_rate(booked_slots, total_slots):
    if not total_slots:
        return 0
    return round(booked_slots / total_slots * 100, 2)


def hourly_distribution(bookings):
    buckets = [{'hour': hour, 'bookings': 0} for hour in range(24)]
    for booking in bookings:
        buckets[booking.start_time.hour]['bookings'] += 1
    return buckets


def peak_hours(bookings, limit=5):
    # sorted() is stable, so equal counts stay in hour order
    ranked = sorted(hourly_distribution(bookings), key=lambda bucket: bucket['bookings'], reverse=True)
    return ranked[:limit]


def average_duration(bookings):
    if not bookings:
        return 0
    return round(sum(booking.duration or 0 for booking in bookings) / len(bookings))


def period_start(period, now):
    if period == 'weekly':
        return now - timedelta(days=7)
    if period == 'monthly':
        return (pd.Timestamp(now) - pd.DateOffset(months=1)).to_pydatetime()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def revenue_by_period(bookings, group_by='daily'):
    """Revenue series grouped by creation day, week (Sunday start) or month."""
    if group_by not in PERIODS:
        raise InvalidInput(f"Invalid group_by: {group_by}")
    if not bookings:
        return []

    df = pd.DataFrame([{
        'created_at': booking.created_at,
        'vehicle_type': booking.vehicle_type,
        'amount': booking.total_amount
    } for booking in bookings])
    created = pd.to_datetime(df['created_at'])

    if group_by == 'daily':
        df['period'] = created.dt.strftime('%Y-%m-%d')
    elif group_by == 'weekly':
        days_since_sunday = (created.dt.dayofweek + 1) % 7
        df['period'] = (created - pd.to_timedelta(days_since_sunday, unit='D')).dt.strftime('%Y-%m-%d')
    else:
        df['period'] = created.dt.strftime('%Y-%m')

    by_type = df.pivot_table(index='period', columns='vehicle_type', values='amount',
                             aggfunc='sum', fill_value=0)
    totals = df.groupby('period')['amount'].agg(['sum', 'count'])

    series = []
    for period, row in totals.iterrows():
        entry = {
            'date': period,
            'total_revenue': float(row['sum']),
            'total_bookings': int(row['count'])
        }
        for vehicle_type in VEHICLE_TYPES:
            entry[vehicle_type] = float(by_type.at[period, vehicle_type]) if vehicle_type in by_type.columns else 0.0
        entry['average_revenue'] = round(entry['total_revenue'] / entry['total_bookings'])
        series.append(entry)
    return series


def slot_usage_rows(bookings):
    usage = {}
    for booking in bookings:
        key = (booking.location.location_code, booking.slot.slot_no)
        row = usage.setdefault(key, {
            'location_code': booking.location.location_code,
            'location_name': booking.location.name,
            'slot_no': booking.slot.slot_no,
            'total_bookings': 0,
            'total_duration': 0,
            'total_revenue': 0
        })
        row['total_bookings'] += 1
        row['total_duration'] += booking.duration or 0
        if booking.payment_status == 'completed':
            row['total_revenue'] += booking.total_amount

    for row in usage.values():
        row['average_duration'] = round(row['total_duration'] / row['total_bookings'])
        row['average_revenue'] = round(row['total_revenue'] / row['total_bookings'])
    return list(usage.values())


def user_segmentation(bookings):
    per_user = {}
    for booking in bookings:
        per_user[booking.user_id] = per_user.get(booking.user_id, 0) + 1
    new_users = sum(1 for count in per_user.values() if count == 1)
    return {'new_users': new_users, 'returning_users': len(per_user) - new_users}


# Query wrappers

def _paid_bookings(location_id=None):
    query = Booking.query.filter(Booking.payment_status == 'completed')
    if location_id:
        query = query.filter(Booking.location_id == location_id)
    return query


def slot_statistics(location_id=None):
    query = Slot.query.filter(Slot.is_active.is_(True))
    if location_id:
        query = query.filter(Slot.location_id == location_id)
    total = query.count()
    available = query.filter(Slot.status == 'available').count()
    booked = query.filter(Slot.status == 'booked').count()
    return {
        'total': total,
        'available': available,
        'booked': booked,
        'occupancy_rate': occupancy_rate(booked, total)
    }


def dashboard_statistics(location_id=None, period='daily', now=None):
    now = now or utcnow()
    start = period_start(period, now)
    bookings = _paid_bookings(location_id).filter(Booking.created_at >= start).all()

    return {
        'period': period,
        'start_date': start.isoformat(),
        'end_date': now.isoformat(),
        'revenue': revenue_summary(bookings),
        'bookings': booking_counts(bookings),
        'slots': slot_statistics(location_id),
        'average_duration': average_duration(bookings)
    }


def revenue_comparison(location_id=None, now=None):
    now = now or utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    today_end = today_start + timedelta(days=1)
    week_start = today_start - timedelta(days=(now.weekday() + 1) % 7)
    month_start = today_start.replace(day=1)

    windows = {
        'daily': _paid_bookings(location_id).filter(Booking.created_at >= today_start,
                                                    Booking.created_at < today_end),
        'weekly': _paid_bookings(location_id).filter(Booking.created_at >= week_start),
        'monthly': _paid_bookings(location_id).filter(Booking.created_at >= month_start)
    }
    result = {}
    for name, query in windows.items():
        bookings = query.all()
        result[name] = {'revenue': revenue_summary(bookings)['total'], 'bookings': len(bookings)}
    return result


def peak_hour_analysis(location_id=None, days=7, now=None):
    if not 0 < days <= MAX_LOOKBACK_DAYS:
        raise InvalidInput(f"Days must be between 1 and {MAX_LOOKBACK_DAYS}")
    now = now or utcnow()
    query = Booking.query.filter(
        Booking.created_at >= now - timedelta(days=days),
        Booking.booking_status.in_(('completed', 'active'))
    )
    if location_id:
        query = query.filter(Booking.location_id == location_id)
    bookings = query.all()
    return {
        'period': f"Last {days} days",
        'peak_hours': peak_hours(bookings),
        'hourly_distribution': hourly_distribution(bookings)
    }


def month_bounds(year, month):
    if not 1 <= month <= 12:
        raise InvalidInput("Month must be between 1 and 12")
    if not 1 <= year <= 9999:
        raise InvalidInput("Year must be between 1 and 9999")
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, 1), datetime(year, month, last_day, 23, 59, 59)


def monthly_usage(year, month, location_id=None):
    start, end = month_bounds(year, month)
    query = Booking.query.filter(Booking.booking_date >= start, Booking.booking_date <= end)
    if location_id:
        query = query.filter(Booking.location_id == location_id)
    bookings = query.all()

    top = peak_hours(bookings, limit=1)
    daily = {}
    for booking in bookings:
        daily[booking.booking_date.day] = daily.get(booking.booking_date.day, 0) + 1

    return {
        'period': {'month': month, 'year': year, 'start_date': start.isoformat(), 'end_date': end.isoformat()},
        'summary': {
            'total_bookings': len(bookings),
            'completed_bookings': booking_counts(bookings)['completed'],
            'total_revenue': sum(b.total_amount for b in bookings if b.payment_status == 'completed'),
            'average_duration': average_duration(bookings),
            'peak_hour': f"{top[0]['hour']}:00" if bookings else 'N/A'
        },
        'daily_bookings': daily,
        'user_segmentation': user_segmentation(bookings),
        'bookings': [{
            'booking_id': b.booking_id,
            'user': b.user.name,
            'location': b.location.name,
            'slot': b.slot.slot_no,
            'vehicle_type': b.vehicle_type,
            'date': b.booking_date.isoformat(),
            'duration': b.duration,
            'amount': b.total_amount,
            'status': b.booking_status
        } for b in bookings]
    }


def slot_usage(location_id=None, start_date=None, end_date=None):
    query = Booking.query
    if location_id:
        query = query.filter(Booking.location_id == location_id)
    if start_date and end_date:
        query = query.filter(Booking.booking_date >= start_date, Booking.booking_date <= end_date)
    return slot_usage_rows(query.all())


def revenue_report(location_id=None, start_date=None, end_date=None, group_by='daily'):
    query = _paid_bookings(location_id)
    if start_date and end_date:
        query = query.filter(Booking.created_at >= start_date, Booking.created_at <= end_date)
    return revenue_by_period(query.all(), group_by)
