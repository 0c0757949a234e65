from flask import Blueprint, g, jsonify

from auth import role_required
from models import ROLE_OWNER
from procedures import get_active_rates_by_garage
from repositories import RatesRepository
from routes import owned_garage, request_data

rates_bp = Blueprint('rates', __name__, url_prefix='/api/rates')


@rates_bp.route('', methods=['GET'])
@role_required(ROLE_OWNER)
def list_rates():
    """Rates of every garage of the owner, keyed by garage name."""
    grouped = RatesRepository.get_all_rates_for_owner(g.user.id)
    return jsonify({name: [r.to_dict() for r in rates] for name, rates in grouped.items()})


@rates_bp.route('/garages', methods=['GET'])
@role_required(ROLE_OWNER)
def rate_garages():
    return jsonify([{'id_garage': i, 'nombre': nombre} for i, nombre in RatesRepository.get_garages(g.user.id)])


@rates_bp.route('/garages/<garage_id>/active', methods=['GET'])
def active_rates(garage_id):
    return jsonify(get_active_rates_by_garage(garage_id))


@rates_bp.route('', methods=['POST'])
@role_required(ROLE_OWNER)
def create_rate():
    data = request_data()
    owned_garage(data.get('garage_id'))
    rate = RatesRepository.create_rate(data)
    return jsonify(rate.to_dict()), 201


@rates_bp.route('/<rate_id>', methods=['PUT'])
@role_required(ROLE_OWNER)
def update_rate(rate_id):
    data = request_data()
    owned_garage(RatesRepository.get_rate(rate_id).garage_id)
    if 'garage_id' in data:
        owned_garage(data['garage_id'])
    return jsonify(RatesRepository.update_rate(rate_id, data).to_dict())


@rates_bp.route('/<rate_id>/active', methods=['PUT'])
@role_required(ROLE_OWNER)
def toggle_rate(rate_id):
    owned_garage(RatesRepository.get_rate(rate_id).garage_id)
    active = request_data().get('active', True)
    return jsonify(RatesRepository.toggle_active(rate_id, active).to_dict())


@rates_bp.route('/<rate_id>', methods=['DELETE'])
@role_required(ROLE_OWNER)
def delete_rate(rate_id):
    """Delete a rate unless a vehicle inside is still priced by it."""
    owned_garage(RatesRepository.get_rate(rate_id).garage_id)
    RatesRepository.delete_rate(rate_id)
    return jsonify({'message': 'Rate deleted successfully'})
