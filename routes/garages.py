from flask import Blueprint, current_app, g, jsonify, request

from auth import login_required, role_required
from errors import NotFound, ValidationError
from models import ROLE_EMPLOYEE, ROLE_OWNER
from reports import ReportType, report_period_range
from repositories import (
    EmpleadoGarageRepository, GarageReportRepository, GarageRepository,
    ParkingRepository, SubscriptionRepository, format_distance,
)
from routes import owned_garage, request_data, staff_garage, uploaded_files

garages_bp = Blueprint('garages', __name__, url_prefix='/api/garages')

NUMERIC_FIELDS = (('capacidad_total', int), ('latitud', float), ('longitud', float))


def _float_arg(name):
    value = request.args.get(name)
    if value in (None, ''):
        return None
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f'Invalid value for {name}')


# ============================================
# Garages
# ============================================

@garages_bp.route('', methods=['GET'])
def list_garages():
    return jsonify([garage.to_dict() for garage in GarageRepository.list_garages()])


@garages_bp.route('/nearby', methods=['GET'])
def nearby_garages():
    """Active garages around ``lat``/``lng``, nearest first."""
    radius = _float_arg('radius_km') or current_app.config['NEARBY_RADIUS_KM']
    nearby = GarageRepository.get_nearby_garages(_float_arg('lat'), _float_arg('lng'), radius)

    result = []
    for garage, distance in nearby:
        item = garage.to_dict()
        item['distance_km'] = round(distance, 3) if distance is not None else None
        item['distance'] = format_distance(distance) if distance is not None else None
        item['espacios_libres'] = SubscriptionRepository.get_available_spaces(garage.id_garage)
        result.append(item)
    return jsonify(result)


@garages_bp.route('', methods=['POST'])
@login_required
def create_garage():
    """Create a garage owned by the caller, with an optional ``image`` file."""
    data = request_data()
    for key, cast in NUMERIC_FIELDS:
        if isinstance(data.get(key), str):
            try:
                data[key] = cast(data[key])
            except ValueError:
                raise ValidationError(f'Invalid value for {key}')

    images = uploaded_files('image')
    garage = GarageRepository.new_garage(data, g.user.id, images[0] if images else None)
    if garage is None:
        return jsonify({'error': 'No se pudo crear el garage'}), 500
    return jsonify(garage.to_dict()), 201


@garages_bp.route('/mine', methods=['GET'])
@role_required(ROLE_OWNER)
def my_garages():
    return jsonify([garage.to_dict() for garage in GarageRepository.get_garages_by_owner(g.user.id)])


@garages_bp.route('/employee', methods=['GET'])
@role_required(ROLE_EMPLOYEE)
def employee_garage():
    """Garage the current employee works at."""
    garage_id = EmpleadoGarageRepository.get_garage_by_empleado_id(g.user.id)
    garage = GarageRepository.get_garage_by_id(garage_id) if garage_id else None
    if garage is None:
        raise NotFound('No estás asignado a ningún garage')
    return jsonify(garage.to_dict())


@garages_bp.route('/<garage_id>', methods=['GET'])
def get_garage(garage_id):
    garage = GarageRepository.get_garage_by_id(garage_id)
    if garage is None:
        raise NotFound('Garage not found')
    data = garage.to_dict()
    data['espacios_libres'] = SubscriptionRepository.get_available_spaces(garage_id)
    return jsonify(data)


# ============================================
# Employees
# ============================================

@garages_bp.route('/<garage_id>/employees', methods=['GET'])
@role_required(ROLE_OWNER)
def list_employees(garage_id):
    owned_garage(garage_id)
    return jsonify([e.to_dict() for e in EmpleadoGarageRepository.get_empleados_by_garage(garage_id)])


@garages_bp.route('/<garage_id>/employees', methods=['POST'])
@role_required(ROLE_OWNER)
def add_employee(garage_id):
    owned_garage(garage_id)
    cedula = request_data().get('cedula')
    if not cedula:
        raise ValidationError('Missing cedula')
    if not EmpleadoGarageRepository.add_empleado_to_garage(garage_id, cedula):
        return jsonify({'error': 'No se pudo agregar el empleado'}), 400
    return jsonify({'message': 'Empleado agregado'}), 201


@garages_bp.route('/<garage_id>/employees/<cedula>', methods=['DELETE'])
@role_required(ROLE_OWNER)
def remove_employee(garage_id, cedula):
    owned_garage(garage_id)
    if not EmpleadoGarageRepository.remove_empleado_from_garage(garage_id, cedula):
        raise NotFound('Empleado not found')
    return jsonify({'message': 'Empleado eliminado'})


# ============================================
# Dashboard
# ============================================

@garages_bp.route('/<garage_id>/stats', methods=['GET'])
@role_required(ROLE_OWNER, ROLE_EMPLOYEE)
def garage_stats(garage_id):
    staff_garage(garage_id)
    return jsonify(EmpleadoGarageRepository.get_stats(garage_id))


@garages_bp.route('/<garage_id>/activity', methods=['GET'])
@role_required(ROLE_OWNER, ROLE_EMPLOYEE)
def recent_activity(garage_id):
    staff_garage(garage_id)
    return jsonify([p.to_actividad() for p in ParkingRepository.get_actividad_reciente(garage_id)])


@garages_bp.route('/<garage_id>/spaces', methods=['GET'])
def available_spaces(garage_id):
    return jsonify({'espacios_libres': SubscriptionRepository.get_available_spaces(garage_id)})


# ============================================
# Reports
# ============================================

@garages_bp.route('/<garage_id>/reports/<report_type>', methods=['GET'])
@role_required(ROLE_OWNER)
def garage_report(garage_id, report_type):
    """
    Occupancy or income report for a period.

    Query args: ``period`` (TWO_MONTHS, THREE_MONTHS, SIX_MONTHS, CUSTOM) and,
    for CUSTOM, ``start_date`` and ``end_date``.
    """
    owned_garage(garage_id)
    try:
        report_type = ReportType(report_type)
    except ValueError:
        raise NotFound(f'Unknown report: {report_type}')

    start, end = report_period_range(
        request.args.get('period', 'TWO_MONTHS'),
        start=request.args.get('start_date'),
        end=request.args.get('end_date'),
    )
    if report_type is ReportType.OCCUPANCY:
        report = GarageReportRepository.get_garage_occupancy_report(garage_id, start, end)
    else:
        parking_ids = GarageReportRepository.get_parking_ids_by_garage(garage_id)
        report = GarageReportRepository.get_garage_income_report(garage_id, parking_ids, start, end)
    return jsonify(report)
