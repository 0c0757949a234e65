"""
Garage statistics and the occupancy / income report procedures.
"""
import calendar
import enum
import logging
from collections import OrderedDict
from datetime import date, datetime, time, timedelta

from errors import NotFound, ValidationError
from models import db, Garage, Parking, User, Vehicle, ACTIVA, COMPLETADA
from utils import parse_datetime

logger = logging.getLogger(__name__)


class ReportType(enum.Enum):
    OCCUPANCY = 'occupancy'
    INCOME = 'income'


class ReportPeriod(enum.Enum):
    TWO_MONTHS = (2, 'Últimos 2 meses')
    THREE_MONTHS = (3, 'Últimos 3 meses')
    SIX_MONTHS = (6, 'Últimos 6 meses')
    CUSTOM = (0, 'Rango personalizado')

    @property
    def months(self):
        return self.value[0]

    @property
    def display_name(self):
        return self.value[1]


def subtract_months(moment, months):
    """Same day ``months`` earlier, clamped to the length of the target month."""
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _inclusive_end(value):
    """A date-only end bound covers its whole day, up to 23:59:59."""
    end = parse_datetime(value, 'end_date')
    date_only = isinstance(value, str) and len(value.strip()) == 10 or \
        isinstance(value, date) and not isinstance(value, datetime)
    if end is not None and date_only:
        end = datetime.combine(end.date(), time(23, 59, 59))
    return end


def report_period_range(period, now=None, start=None, end=None):
    """
    Resolve a report period into a (start, end) pair of datetimes.

    Args:
        period: ReportPeriod member or its name ('TWO_MONTHS', ...)
        now: reference moment for the predefined periods
        start, end: bounds of a CUSTOM period

    Returns:
        tuple: (start_date, end_date)
    """
    if isinstance(period, str):
        try:
            period = ReportPeriod[period.upper()]
        except KeyError:
            raise ValidationError(f'Unknown report period: {period}')

    if period is ReportPeriod.CUSTOM:
        start = parse_datetime(start, 'start_date')
        end = _inclusive_end(end)
        if start is None or end is None:
            raise ValidationError('A custom period needs start_date and end_date')
    else:
        end = now or datetime.now()
        start = subtract_months(end, period.months)

    if start > end:
        raise ValidationError('start_date must not be after end_date')
    return start, end


def _report_bounds(params):
    if not isinstance(params, dict):
        raise ValidationError('params must be an object')
    garage = db.session.get(Garage, params.get('garage_id')) if params.get('garage_id') else None
    if garage is None:
        raise NotFound('Garage not found')
    start = parse_datetime(params.get('start_date'), 'start_date')
    end = _inclusive_end(params.get('end_date'))
    if start is None or end is None:
        raise ValidationError('start_date and end_date are required')
    if start > end:
        raise ValidationError('start_date must not be after end_date')
    return garage, start, end


# ============================================
# Occupancy
# ============================================

def rpc_get_garage_occupancy_report(params):
    """
    Vehicles that entered a garage within a date range.

    Counts every entry that actually happened (active or completed), grouped
    by day and by the employee who registered it.
    """
    garage, start, end = _report_bounds(params)

    parkings = (
        Parking.query
        .filter(
            Parking.garage_id == garage.id_garage,
            Parking.estado.in_([ACTIVA, COMPLETADA]),
            Parking.hora_entrada >= start,
            Parking.hora_entrada <= end,
        )
        .order_by(Parking.hora_entrada)
        .all()
    )

    daily = OrderedDict()
    for p in parkings:
        day = p.hora_entrada.date().isoformat()
        daily[day] = daily.get(day, 0) + 1

    per_employee = {}
    for p in parkings:
        per_employee[p.created_by_user_id] = per_employee.get(p.created_by_user_id, 0) + 1

    employee_data = []
    for employee_id, count in per_employee.items():
        employee = db.session.get(User, employee_id) if employee_id else None
        employee_data.append({
            'employee_id': employee_id or '',
            'employee_name': employee.nombre if employee else 'Sin asignar',
            'vehicle_count': count,
        })
    employee_data.sort(key=lambda e: (-e['vehicle_count'], e['employee_name']))

    stays = [
        (p.hora_salida - p.hora_entrada).total_seconds() / 60
        for p in parkings
        if p.estado == COMPLETADA and p.hora_salida is not None
    ]
    average = round(sum(stays) / len(stays), 2) if stays else None

    return {
        'garage_name': garage.nombre,
        'total_vehicles': len(parkings),
        'daily_data': [{'date': d, 'vehicle_count': c} for d, c in daily.items()],
        'employee_data': employee_data,
        'average_stay_minutes': average,
    }


# ============================================
# Income
# ============================================

def rpc_get_garage_income_report(params):
    """
    Income of the completed parkings of a garage whose exit falls in range.

    When ``parking_ids`` is given only those parkings are counted.
    """
    garage, start, end = _report_bounds(params)

    query = (
        db.session.query(Parking, Vehicle)
        .outerjoin(Vehicle, Parking.vehicle_id == Vehicle.id)
        .filter(
            Parking.garage_id == garage.id_garage,
            Parking.estado == COMPLETADA,
            Parking.hora_salida >= start,
            Parking.hora_salida <= end,
        )
        .order_by(Parking.hora_salida)
    )
    parking_ids = params.get('parking_ids')
    if parking_ids is not None:
        query = query.filter(Parking.id.in_(parking_ids))
    rows = query.all()

    daily = OrderedDict()
    per_parking = OrderedDict()
    total_income = 0.0
    for parking, vehicle in rows:
        amount = parking.total or 0.0
        total_income += amount

        day = parking.hora_salida.date().isoformat()
        income, count = daily.get(day, (0.0, 0))
        daily[day] = (income + amount, count + 1)

        name = vehicle.plate if vehicle else parking.id
        income, count, _ = per_parking.get(parking.id, (0.0, 0, name))
        per_parking[parking.id] = (income + amount, count + 1, name)

    return {
        'garage_name': garage.nombre,
        'total_income': round(total_income, 2),
        'daily_income': [
            {'date': d, 'income': round(i, 2), 'transaction_count': c}
            for d, (i, c) in daily.items()
        ],
        'parking_income': [
            {'parking_id': pid, 'parking_name': name, 'income': round(i, 2), 'transaction_count': c}
            for pid, (i, c, name) in per_parking.items()
        ],
    }


# ============================================
# Dashboard stats
# ============================================

def garage_stats(garage_id, today=None):
    """
    Live counters for a garage.

    Returns:
        dict with autos_activos, espacios_libres, entradas_hoy, salidas_hoy
    """
    garage = db.session.get(Garage, garage_id)
    if garage is None:
        return empty_stats()

    today = today or datetime.now().date()
    day_start = datetime.combine(today, datetime.min.time())
    day_end = day_start + timedelta(days=1)

    base = Parking.query.filter(Parking.garage_id == garage_id)
    autos_activos = base.filter(Parking.estado == ACTIVA).count()
    entradas_hoy = base.filter(
        Parking.estado.in_([ACTIVA, COMPLETADA]),
        Parking.hora_entrada >= day_start,
        Parking.hora_entrada < day_end,
    ).count()
    salidas_hoy = base.filter(
        Parking.hora_salida.isnot(None),
        Parking.hora_salida >= day_start,
        Parking.hora_salida < day_end,
    ).count()

    return {
        'autos_activos': autos_activos,
        'espacios_libres': max(0, garage.capacidad_total - autos_activos),
        'entradas_hoy': entradas_hoy,
        'salidas_hoy': salidas_hoy,
    }


def empty_stats():
    return {'autos_activos': 0, 'espacios_libres': 0, 'entradas_hoy': 0, 'salidas_hoy': 0}
