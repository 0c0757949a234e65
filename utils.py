from datetime import date, datetime, time

from errors import ValidationError


def parse_datetime(value, field='fecha'):
    """
    Accept a datetime or an ISO-8601 string and return a naive local datetime.

    Offsets such as '+00:00' or 'Z' are converted to local time first.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f'Invalid date format for {field}')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_date(value, field='fecha'):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f'Invalid date format for {field}')


def parse_time(value, field='hora'):
    if value is None or value == '':
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f'Invalid time format for {field}')


def normalize_plate(plate):
    return (plate or '').strip().upper()
