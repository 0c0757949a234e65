from flask import Blueprint, g, jsonify

from auth import login_required, role_required
from errors import NotFound, ValidationError
from models import ROLE_EMPLOYEE, ROLE_OWNER, ROLE_USER
from procedures import calcular_salida
from repositories import ParkingRepository, ReservasRepository
from routes import request_data, staff_garage, uploaded_files

parking_bp = Blueprint('parking', __name__, url_prefix='/api')

STAFF = (ROLE_EMPLOYEE, ROLE_OWNER)


def _staff_parking(parking_id):
    parking = ParkingRepository.get_parking_by_id(parking_id)
    if parking is None:
        raise NotFound('Parking not found')
    staff_garage(parking.garage_id)
    return parking


# ============================================
# Entry
# ============================================

@parking_bp.route('/parkings/entry', methods=['POST'])
@role_required(*STAFF)
def register_entry():
    """Register a vehicle entering by plate; photos come as ``fotos`` files."""
    data = request_data()
    if not data.get('garage_id') or not data.get('plate'):
        raise ValidationError('Missing required fields: garage_id, plate')
    staff_garage(data['garage_id'])

    parking, ticket = ParkingRepository.registrar_entrada(
        data['garage_id'], data['plate'], g.user.id,
        rate_id=data.get('rate_id') or None,
        fotos=uploaded_files('fotos'),
    )
    return jsonify({'parking': parking.to_dict(), 'ticket': ticket}), 201


@parking_bp.route('/reservas/<reserva_id>/entry', methods=['POST'])
@role_required(*STAFF)
def register_entry_from_reserva(reserva_id):
    reserva = ReservasRepository.get_reserva(reserva_id)
    staff_garage(reserva.garage_id)
    parking, ticket = ParkingRepository.registrar_entrada_desde_reserva(
        reserva_id, g.user.id, fotos=uploaded_files('fotos')
    )
    return jsonify({'parking': parking.to_dict(), 'ticket': ticket}), 201


# ============================================
# Exit
# ============================================

@parking_bp.route('/parkings/<parking_id>', methods=['GET'])
@role_required(*STAFF)
def get_parking(parking_id):
    return jsonify(_staff_parking(parking_id).to_dict())


@parking_bp.route('/parkings/<parking_id>/preview', methods=['GET'])
@role_required(*STAFF)
def preview_exit(parking_id):
    """What the vehicle would pay if it left now."""
    _staff_parking(parking_id)
    return jsonify(calcular_salida(parking_id))


@parking_bp.route('/parkings/<parking_id>/exit', methods=['POST'])
@role_required(*STAFF)
def register_exit(parking_id):
    _staff_parking(parking_id)
    parking = ParkingRepository.registrar_salida(
        parking_id,
        request_data().get('hora_salida'),
        uploaded_files('fotos'),
    )
    return jsonify(parking.to_dict())


@parking_bp.route('/parkings/<parking_id>/exit-payment', methods=['POST'])
@role_required(*STAFF)
def register_exit_with_payment(parking_id):
    """
    Close a parking with its payment.

    Multipart fields: ``metodo_pago`` (EFECTIVO or TRANSFERENCIA), ``fotos``
    files and, for transfers, a ``comprobante`` file.
    """
    _staff_parking(parking_id)
    comprobante = uploaded_files('comprobante')
    parking = ParkingRepository.registrar_salida_con_pago(
        parking_id,
        g.user.id,
        request_data().get('metodo_pago'),
        uploaded_files('fotos'),
        comprobante[0] if comprobante else None,
    )
    return jsonify(parking.to_dict())


@parking_bp.route('/parkings/<parking_id>/incidencia', methods=['PUT'])
@role_required(*STAFF)
def flag_incident(parking_id):
    _staff_parking(parking_id)
    flag = request_data().get('es_incidencia', True)
    return jsonify(ParkingRepository.marcar_incidencia(parking_id, flag).to_dict())


# ============================================
# Garage lists
# ============================================

@parking_bp.route('/garages/<garage_id>/inside', methods=['GET'])
@role_required(*STAFF)
def vehicles_inside(garage_id):
    staff_garage(garage_id)
    return jsonify([p.to_actividad() for p in ParkingRepository.get_vehiculos_dentro(garage_id)])


@parking_bp.route('/garages/<garage_id>/outside', methods=['GET'])
@role_required(*STAFF)
def vehicles_outside(garage_id):
    staff_garage(garage_id)
    return jsonify([p.to_dict() for p in ParkingRepository.get_vehiculos_fuera(garage_id)])


@parking_bp.route('/garages/<garage_id>/incidencias', methods=['GET'])
@role_required(*STAFF)
def incidents(garage_id):
    staff_garage(garage_id)
    return jsonify([p.to_dict() for p in ParkingRepository.get_incidencias(garage_id)])


@parking_bp.route('/garages/<garage_id>/reservas', methods=['GET'])
@role_required(*STAFF)
def garage_reservas(garage_id):
    """Pending reservations with their driver, earliest first."""
    staff_garage(garage_id)
    return jsonify([r.to_dict_con_usuario() for r in ReservasRepository.get_reservas_con_usuario(garage_id)])


@parking_bp.route('/garages/<garage_id>/reservas/all', methods=['GET'])
@role_required(*STAFF)
def all_garage_reservas(garage_id):
    staff_garage(garage_id)
    return jsonify([r.to_dict() for r in ReservasRepository.listar_reservas_por_garage(garage_id)])


# ============================================
# Drivers
# ============================================

@parking_bp.route('/parkings/history', methods=['GET'])
@login_required
def history():
    return jsonify(ParkingRepository.get_historial_by_user(g.user.id))


@parking_bp.route('/reservas', methods=['POST'])
@role_required(ROLE_USER)
def create_reserva():
    data = request_data()
    reserva = ReservasRepository.crear_reserva(
        data.get('garage_id'), data.get('vehicle_id'), data.get('hora_reserva'), g.user.id
    )
    return jsonify(reserva.to_dict()), 201


@parking_bp.route('/reservas/mine', methods=['GET'])
@login_required
def my_reservas():
    return jsonify([r.to_dict() for r in ReservasRepository.get_reservas_by_user(g.user.id)])


@parking_bp.route('/reservas/<reserva_id>/cancel', methods=['POST'])
@login_required
def cancel_reserva(reserva_id):
    reserva = ReservasRepository.get_reserva(reserva_id)
    owner_id = reserva.vehicle.user_id if reserva.vehicle else None
    if owner_id != g.user.id:
        staff_garage(reserva.garage_id)
    ReservasRepository.cancelar_reserva(reserva_id)
    return jsonify({'message': 'Reserva cancelada'})


@parking_bp.route('/reservas/<reserva_id>/activate', methods=['POST'])
@role_required(*STAFF)
def activate_reserva(reserva_id):
    reserva = ReservasRepository.get_reserva(reserva_id)
    staff_garage(reserva.garage_id)
    return jsonify(ReservasRepository.activar_reserva(reserva_id).to_dict())
