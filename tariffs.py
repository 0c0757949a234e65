"""
Tariff rules: which rate applies to a vehicle at a given moment and what a
stay costs under that rate.
"""
import math
from datetime import datetime

from errors import ValidationError
from models import DIAS_SEMANA

SECONDS_PER_HOUR = 3600

# Hours covered by one billing unit of each time_unit
UNIT_HOURS = {
    'hora': 1,
    'día': 24,
    'dia': 24,
    'semana': 24 * 7,
    'mes': 24 * 30,
}


def dia_semana(moment):
    """Spanish weekday name for ``moment`` ('lunes' .. 'domingo')."""
    return DIAS_SEMANA[moment.weekday()]


def in_hour_window(moment, hora_inicio, hora_fin):
    """
    Check whether the time of ``moment`` falls in [hora_inicio, hora_fin].

    A window whose end is before its start wraps past midnight (22:00-06:00).
    A missing bound means the rate applies all day.
    """
    if hora_inicio is None or hora_fin is None:
        return True
    t = moment.time()
    if hora_inicio <= hora_fin:
        return hora_inicio <= t <= hora_fin
    return t >= hora_inicio or t <= hora_fin


def rate_applies(rate, moment, vehicle_type_id=None):
    """
    Decide if ``rate`` can price a stay starting at ``moment``.

    Args:
        rate: Rate row (or any object with the same attributes)
        moment: datetime of entry
        vehicle_type_id: type of the vehicle; rates without a type match any

    Returns:
        bool
    """
    if not rate.active:
        return False
    if rate.vehicle_type_id is not None and rate.vehicle_type_id != vehicle_type_id:
        return False
    day = moment.date()
    if rate.start_date is not None and day < rate.start_date:
        return False
    if rate.end_date is not None and day > rate.end_date:
        return False
    dias = rate.dias_aplicables or DIAS_SEMANA
    if dia_semana(moment) not in dias:
        return False
    return in_hour_window(moment, rate.hora_inicio, rate.hora_fin)


def _specificity(rate):
    # Lower sorts first: typed before generic, windowed before all-day, cheaper first
    typed = 0 if rate.vehicle_type_id is not None else 1
    windowed = 0 if rate.hora_inicio is not None and rate.hora_fin is not None else 1
    return (typed, windowed, rate.base_rate, str(rate.id))


def select_rate(rates, vehicle_type_id, moment):
    """Pick the most specific applicable rate, or None."""
    candidates = [r for r in rates if rate_applies(r, moment, vehicle_type_id)]
    if not candidates:
        return None
    return min(candidates, key=_specificity)


def unit_price(rate, subscriber=False):
    if subscriber and rate.special_rate is not None:
        return rate.special_rate
    return rate.base_rate


def calculate_parking_fee(entry_time, price, time_unit='hora', exit_time=None):
    """
    Calculate the fee of a stay.

    Every started unit is charged in full and the first unit is always
    charged, however short the stay.

    Args:
        entry_time: datetime when the vehicle entered
        price: price of one unit
        time_unit: 'hora', 'día', 'semana' or 'mes'
        exit_time: optional datetime of exit (defaults to now)

    Returns:
        tuple: (duration_hours, amount) both rounded to 2 decimal places
    """
    if exit_time is None:
        exit_time = datetime.now()
    if time_unit not in UNIT_HOURS:
        raise ValidationError(f'Unidad de tiempo inválida: {time_unit}')
    if exit_time < entry_time:
        raise ValidationError('La hora de salida es anterior a la de entrada')

    hours = (exit_time - entry_time).total_seconds() / SECONDS_PER_HOUR
    units = max(1, math.ceil(round(hours / UNIT_HOURS[time_unit], 9)))
    amount = round(units * price, 2)

    return round(hours, 2), amount
