"""
Server-side procedures.

Business rules that run as named procedures: tariff assignment, exit
calculation and confirmation, subscription requests and approvals and the
parking history of a user. Each one is reachable in-process and through
``POST /rpc/<name>`` via :func:`call_procedure`.
"""
import inspect
import logging
from datetime import datetime

from errors import InvalidState, NotFound, ValidationError
from models import (
    db, Garage, Parking, ParkingPago, Rate, Reserva, Subscription, SubscriptionPlan,
    SubscriptionRequest, User, Vehicle, ACTIVA, APROBADA, COMPLETADA, EFECTIVO,
    PENDIENTE, TRANSFERENCIA,
)
from reports import rpc_get_garage_income_report, rpc_get_garage_occupancy_report
from tariffs import calculate_parking_fee, select_rate, unit_price
from utils import parse_datetime

logger = logging.getLogger(__name__)

METODOS_PAGO = (EFECTIVO, TRANSFERENCIA)


def _get_parking(parking_id):
    parking = db.session.get(Parking, parking_id) if parking_id else None
    if parking is None:
        raise NotFound('Parking not found')
    return parking


def is_subscriber(user_id, garage_id):
    if not user_id:
        return False
    return Subscription.query.filter_by(
        user_id=user_id, garage_id=garage_id, active=True
    ).first() is not None


# ============================================
# Tariffs
# ============================================

def asignar_tarifa(garage, vehicle, moment=None):
    """
    Return the id of the rate that prices ``vehicle`` at ``garage``.

    Args:
        garage: garage id
        vehicle: vehicle id
        moment: optional datetime the rate must apply at (defaults to now)

    Returns:
        Rate id, or None when no active rate applies
    """
    moment = parse_datetime(moment, 'moment') or datetime.now()
    vehicle_row = db.session.get(Vehicle, vehicle) if vehicle else None
    if vehicle_row is None:
        raise NotFound('Vehicle not found')
    rates = Rate.query.filter_by(garage_id=garage, active=True).all()
    rate = select_rate(rates, vehicle_row.type_id, moment)
    return rate.id if rate else None


def get_active_rates_by_garage(p_garage_id):
    rates = Rate.query.filter_by(garage_id=p_garage_id, active=True).all()
    return [r.to_dict() for r in rates]


def _rate_for(parking):
    rate = db.session.get(Rate, parking.rate_id) if parking.rate_id else None
    if rate is None:
        rate_id = asignar_tarifa(parking.garage_id, parking.vehicle_id, parking.hora_entrada)
        rate = db.session.get(Rate, rate_id) if rate_id else None
    if rate is None:
        raise NotFound('No hay una tarifa aplicable para este vehículo')
    return rate


def _salida_response(parking, total, hora_salida, duration_hours):
    return {
        'parking_id': parking.id,
        'total': total,
        'hora_entrada': parking.hora_entrada.isoformat(),
        'hora_salida': hora_salida.isoformat(),
        'duration_hours': duration_hours,
        'vehiculo_id': parking.vehicle_id,
        'garage_id': parking.garage_id,
    }


def calcular_salida(p_parking_id, p_hora_salida=None):
    """
    Preview the exit of a parking without changing it.

    A completed parking reports its recorded exit and total.
    """
    parking = _get_parking(p_parking_id)

    if parking.estado == COMPLETADA:
        hours = round((parking.hora_salida - parking.hora_entrada).total_seconds() / 3600, 2)
        return _salida_response(parking, parking.total, parking.hora_salida, hours)
    if parking.estado != ACTIVA:
        raise InvalidState(f'Parking is {parking.estado}, not inside the garage')

    hora_salida = parse_datetime(p_hora_salida, 'hora_salida') or datetime.now()
    rate = _rate_for(parking)
    owner_id = parking.vehicle.user_id if parking.vehicle else None
    price = unit_price(rate, subscriber=is_subscriber(owner_id, parking.garage_id))
    duration_hours, total = calculate_parking_fee(
        parking.hora_entrada, price, rate.time_unit, hora_salida
    )
    return _salida_response(parking, total, hora_salida, duration_hours)


def _close_parking(parking, hora_salida, fotos_salida=None):
    """Record the exit of an active parking. The exit is set only once."""
    if parking.estado != ACTIVA or parking.hora_salida is not None:
        raise InvalidState('Session already closed')

    hora_salida = parse_datetime(hora_salida, 'hora_salida') or datetime.now()
    preview = calcular_salida(parking.id, hora_salida)
    parking.hora_salida = hora_salida
    parking.total = preview['total']
    parking.estado = COMPLETADA
    if parking.rate_id is None:
        parking.rate_id = asignar_tarifa(parking.garage_id, parking.vehicle_id, parking.hora_entrada)
    if fotos_salida:
        parking.fotos_salida = list(fotos_salida)

    # A parking that came from a reservation completes the reservation in use
    if parking.tipo == 'reserva':
        Reserva.query.filter(
            Reserva.vehicle_id == parking.vehicle_id,
            Reserva.garage_id == parking.garage_id,
            Reserva.estado == ACTIVA,
        ).update({'estado': COMPLETADA}, synchronize_session=False)
    return parking


def confirmar_salida(p_parking_id, p_hora_salida=None, p_fotos_salida=None):
    """Close a parking at the calculated total, unpaid."""
    parking = _get_parking(p_parking_id)
    _close_parking(parking, p_hora_salida, p_fotos_salida)
    db.session.commit()
    logger.info('Exit confirmed for parking %s, total %.2f', parking.id, parking.total)
    return parking.to_dict()


def registrar_salida_con_pago(p_parking_id, p_empleado_id, p_metodo, p_hora_salida=None,
                              p_comprobante_url=None, p_fotos_salida=None):
    """
    Close a parking and record its payment in one transaction.

    A transfer must carry the URL of its receipt.
    """
    if p_metodo not in METODOS_PAGO:
        raise ValidationError(f'Método de pago inválido: {p_metodo}')
    if p_metodo == TRANSFERENCIA and not p_comprobante_url:
        raise ValidationError('La transferencia requiere comprobante')
    if not p_empleado_id or db.session.get(User, p_empleado_id) is None:
        raise NotFound('Empleado not found')

    parking = _get_parking(p_parking_id)
    try:
        _close_parking(parking, p_hora_salida, p_fotos_salida)
        parking.pagado = True
        db.session.add(ParkingPago(
            parking_id=parking.id,
            metodo=p_metodo,
            comprobante_url=p_comprobante_url,
            empleado_id=p_empleado_id,
            monto=parking.total,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info('Paid exit for parking %s via %s: %.2f', parking.id, p_metodo, parking.total)
    return parking.to_dict()


# ============================================
# Subscriptions
# ============================================

def solicitar_suscripcion(p_user_id, p_garage_id, p_plan_id):
    """Create a pending subscription request."""
    if not p_user_id or db.session.get(User, p_user_id) is None:
        raise NotFound('User not found')
    if not p_garage_id or db.session.get(Garage, p_garage_id) is None:
        raise NotFound('Garage not found')
    plan = db.session.get(SubscriptionPlan, p_plan_id) if p_plan_id else None
    if plan is None or not plan.active:
        raise NotFound('Plan not found')

    if is_subscriber(p_user_id, p_garage_id):
        raise InvalidState('Ya tienes una suscripción activa en este garage')
    pending = SubscriptionRequest.query.filter_by(
        user_id=p_user_id, garage_id=p_garage_id, status=PENDIENTE
    ).first()
    if pending:
        raise InvalidState('Ya existe una solicitud pendiente')

    request_row = SubscriptionRequest(user_id=p_user_id, garage_id=p_garage_id, plan_id=p_plan_id)
    db.session.add(request_row)
    db.session.commit()
    logger.info('Subscription requested by %s at garage %s', p_user_id, p_garage_id)
    return request_row.to_dict()


def aprobar_suscripcion(p_request_id):
    """Approve a pending request and activate the subscription it asks for."""
    request_row = db.session.get(SubscriptionRequest, p_request_id) if p_request_id else None
    if request_row is None:
        raise NotFound('Subscription request not found')
    if request_row.status != PENDIENTE:
        raise InvalidState(f'Request is already {request_row.status}')

    request_row.status = APROBADA
    subscription = Subscription(
        user_id=request_row.user_id,
        garage_id=request_row.garage_id,
        plan_id=request_row.plan_id,
        start_date=datetime.now().date(),
    )
    db.session.add(subscription)
    db.session.commit()
    logger.info('Subscription request %s approved', p_request_id)
    return subscription.to_dict()


# ============================================
# History
# ============================================

def historial_parking_usuario(p_user_id):
    """Parkings of every vehicle owned by ``p_user_id``, newest first."""
    rows = (
        db.session.query(Parking, Vehicle, Garage)
        .join(Vehicle, Parking.vehicle_id == Vehicle.id)
        .outerjoin(Garage, Parking.garage_id == Garage.id_garage)
        .filter(Vehicle.user_id == p_user_id)
        .order_by(Parking.hora_entrada.desc())
        .all()
    )
    return [
        {
            'parking_id': parking.id,
            'garage_id': parking.garage_id,
            'garage_nombre': garage.nombre if garage else None,
            'garage_direccion': garage.direccion if garage else None,
            'garage_imagen': garage.image_url if garage else None,
            'vehicle_id': vehicle.id,
            'plate': vehicle.plate,
            'model': vehicle.model,
            'hora_entrada': parking.hora_entrada.isoformat() if parking.hora_entrada else None,
            'hora_salida': parking.hora_salida.isoformat() if parking.hora_salida else None,
            'estado': parking.estado,
            'tipo': parking.tipo,
        }
        for parking, vehicle, garage in rows
    ]


PROCEDURES = {
    'asignar_tarifa': asignar_tarifa,
    'get_active_rates_by_garage': get_active_rates_by_garage,
    'calcular_salida': calcular_salida,
    'calcular_salida_preview': calcular_salida,
    'confirmar_salida': confirmar_salida,
    'registrar_salida_con_pago': registrar_salida_con_pago,
    'rpc_get_garage_occupancy_report': rpc_get_garage_occupancy_report,
    'rpc_get_garage_income_report': rpc_get_garage_income_report,
    'solicitar_suscripcion': solicitar_suscripcion,
    'aprobar_suscripcion': aprobar_suscripcion,
    'historial_parking_usuario': historial_parking_usuario,
}


def resolve_procedure(name, params=None):
    """
    Look up a procedure and check ``params`` against its signature.

    Returns:
        tuple: (procedure, arguments) with the arguments as a plain dict

    Raises:
        NotFound: unknown procedure
        ValidationError: arguments that do not match its signature
    """
    procedure = PROCEDURES.get(name)
    if procedure is None:
        raise NotFound(f'Unknown procedure: {name}')
    params = params or {}
    if not isinstance(params, dict):
        raise ValidationError('Procedure arguments must be a JSON object')
    try:
        bound = inspect.signature(procedure).bind(**params)
    except TypeError as e:
        raise ValidationError(f'Invalid arguments for {name}: {e}')
    return procedure, dict(bound.arguments)


def call_procedure(name, params=None):
    """Invoke a procedure by name with keyword arguments from ``params``."""
    procedure, arguments = resolve_procedure(name, params)
    return procedure(**arguments)
