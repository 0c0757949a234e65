"""
``POST /rpc/<name>``: named procedures called with a JSON body.

Every procedure has an access rule that runs after its arguments are
checked and before it executes. A procedure without a rule is not callable
over HTTP.
"""
from flask import Blueprint, g, jsonify, request

from auth import login_required
from errors import Forbidden, NotFound
from models import ROLE_EMPLOYEE, ROLE_OWNER
from procedures import resolve_procedure
from repositories import ParkingRepository, SubscriptionRepository
from routes import owned_garage, staff_garage
from session_manager import session_manager

rpc_bp = Blueprint('rpc', __name__, url_prefix='/rpc')

STAFF = (ROLE_EMPLOYEE, ROLE_OWNER)


def _require_role(*roles):
    if session_manager.get_active_role(g.session) not in roles:
        raise Forbidden(f'Se requiere el rol {" o ".join(roles)}')


def _require_self(user_id):
    if user_id != g.user.id:
        raise Forbidden('Solo puedes actuar en tu propio nombre')


def _staff_parking(parking_id):
    _require_role(*STAFF)
    parking = ParkingRepository.get_parking_by_id(parking_id) if parking_id else None
    if parking is None:
        raise NotFound('Parking not found')
    staff_garage(parking.garage_id)


def _report_owner(arguments):
    _require_role(ROLE_OWNER)
    params = arguments.get('params')
    owned_garage(params.get('garage_id') if isinstance(params, dict) else None)


def _open(arguments):
    pass


def _exit_staff(arguments):
    _staff_parking(arguments.get('p_parking_id'))


def _paying_staff(arguments):
    _staff_parking(arguments.get('p_parking_id'))
    _require_self(arguments.get('p_empleado_id'))


def _own_user(arguments):
    _require_self(arguments.get('p_user_id'))


def _request_owner(arguments):
    _require_role(ROLE_OWNER)
    owned_garage(SubscriptionRepository.get_solicitud(arguments.get('p_request_id')).garage_id)


ACCESS_RULES = {
    'asignar_tarifa': _open,
    'get_active_rates_by_garage': _open,
    'calcular_salida': _exit_staff,
    'calcular_salida_preview': _exit_staff,
    'confirmar_salida': _exit_staff,
    'registrar_salida_con_pago': _paying_staff,
    'rpc_get_garage_occupancy_report': _report_owner,
    'rpc_get_garage_income_report': _report_owner,
    'solicitar_suscripcion': _own_user,
    'aprobar_suscripcion': _request_owner,
    'historial_parking_usuario': _own_user,
}


@rpc_bp.route('/<name>', methods=['POST'])
@login_required
def call(name):
    """Call a named procedure with the JSON body as keyword arguments."""
    params = request.get_json(silent=True)
    procedure, arguments = resolve_procedure(name, params if params is not None else {})
    rule = ACCESS_RULES.get(name)
    if rule is None:
        raise NotFound(f'Unknown procedure: {name}')
    rule(arguments)
    return jsonify(procedure(**arguments))
