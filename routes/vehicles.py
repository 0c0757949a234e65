from flask import Blueprint, g, jsonify

from auth import login_required
from errors import NotFound
from repositories import VehiclesRepository
from routes import request_data

vehicles_bp = Blueprint('vehicles', __name__, url_prefix='/api')


@vehicles_bp.route('/vehicle-types', methods=['GET'])
def vehicle_types():
    return jsonify([{'id': i, 'name': name} for i, name in VehiclesRepository.get_vehicle_types()])


@vehicles_bp.route('/vehicles', methods=['GET'])
@login_required
def my_vehicles():
    return jsonify([v.to_dict() for v in VehiclesRepository.get_vehicles_by_user(g.user.id)])


@vehicles_bp.route('/vehicles', methods=['POST'])
@login_required
def add_vehicle():
    vehicle = VehiclesRepository.add_vehicle(request_data(), g.user.id)
    if vehicle is None:
        return jsonify({'error': 'No se pudo registrar el vehículo'}), 500
    return jsonify(vehicle.to_dict()), 201


@vehicles_bp.route('/vehicles/<vehicle_id>', methods=['DELETE'])
@login_required
def delete_vehicle(vehicle_id):
    """Delete one of the caller's vehicles; refused while it is parked."""
    if not VehiclesRepository.delete_vehicle(vehicle_id, g.user.id):
        raise NotFound('Vehicle not found')
    return jsonify({'message': 'Vehicle deleted successfully'})
