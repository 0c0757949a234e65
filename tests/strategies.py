"""
Hypothesis strategies for generating U-Park test data.
"""
from datetime import datetime, time, timedelta
from hypothesis import strategies as st
import string

from models import DIAS_SEMANA


# Unit prices - positive floats between 0.01 and 1000
unit_prices = st.floats(
    min_value=0.01,
    max_value=1000.0,
    allow_nan=False,
    allow_infinity=False
).map(lambda x: round(x, 2))

time_units = st.sampled_from(['hora', 'día', 'semana', 'mes'])

# License plate strategy - uppercase alphanumeric 3-10 chars
license_plates = st.text(
    alphabet=string.ascii_uppercase + string.digits,
    min_size=3,
    max_size=10
).filter(lambda x: len(x) >= 3)

# Stay length in hours - up to two months
duration_hours = st.floats(
    min_value=0.0,
    max_value=24 * 60,
    allow_nan=False,
    allow_infinity=False
)

# Entry moments within a fixed year so weekdays and dates are reproducible
moments = st.datetimes(
    min_value=datetime(2025, 1, 1),
    max_value=datetime(2025, 12, 31, 23, 59),
)

clock_times = st.times().map(lambda t: time(t.hour, t.minute))


class FakeRate:
    """Stand-in with the attributes the tariff rules read from a Rate row."""

    def __init__(self, id='r', base_rate=1.0, vehicle_type_id=None, active=True,
                 hora_inicio=None, hora_fin=None, dias_aplicables=None,
                 start_date=None, end_date=None, special_rate=None, time_unit='hora'):
        self.id = id
        self.base_rate = base_rate
        self.vehicle_type_id = vehicle_type_id
        self.active = active
        self.hora_inicio = hora_inicio
        self.hora_fin = hora_fin
        self.dias_aplicables = dias_aplicables if dias_aplicables is not None else list(DIAS_SEMANA)
        self.start_date = start_date
        self.end_date = end_date
        self.special_rate = special_rate
        self.time_unit = time_unit


@st.composite
def stays(draw):
    """Generate an (entry, exit) pair."""
    entry = draw(moments)
    hours = draw(duration_hours)
    return entry, entry + timedelta(hours=hours)


@st.composite
def weekday_subsets(draw):
    """Non-empty subset of weekdays in calendar order."""
    chosen = draw(st.sets(st.sampled_from(DIAS_SEMANA), min_size=1))
    return [d for d in DIAS_SEMANA if d in chosen]
