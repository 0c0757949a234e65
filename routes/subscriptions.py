from flask import Blueprint, g, jsonify, request

from auth import login_required, role_required
from errors import NotFound
from models import ROLE_OWNER
from repositories import SubscriptionRepository
from routes import owned_garage, request_data

subscriptions_bp = Blueprint('subscriptions', __name__, url_prefix='/api/subscriptions')


@subscriptions_bp.route('/plans', methods=['GET'])
def plans():
    return jsonify([p.to_dict() for p in SubscriptionRepository.get_plans()])


@subscriptions_bp.route('/mine', methods=['GET'])
@login_required
def my_subscription():
    """Active subscription of the caller, optionally at ``garage_id``."""
    garage_id = request.args.get('garage_id')
    if garage_id:
        subscription = SubscriptionRepository.get_active_subscription(g.user.id, garage_id)
    else:
        subscription = SubscriptionRepository.get_active_subscription_by_user(g.user.id)
    if subscription is None:
        raise NotFound('No tienes una suscripción activa')
    return jsonify(subscription.to_dict())


@subscriptions_bp.route('/requests', methods=['POST'])
@login_required
def request_subscription():
    data = request_data()
    result = SubscriptionRepository.request_subscription(g.user.id, data.get('garage_id'), data.get('plan_id'))
    return jsonify(result), 201


@subscriptions_bp.route('/<subscription_id>', methods=['DELETE'])
@login_required
def cancel_subscription(subscription_id):
    SubscriptionRepository.cancel_subscription(subscription_id, g.user.id)
    return jsonify({'message': 'Suscripción cancelada'})


@subscriptions_bp.route('/garages/<garage_id>/requests', methods=['GET'])
@role_required(ROLE_OWNER)
def garage_requests(garage_id):
    owned_garage(garage_id)
    solicitudes = SubscriptionRepository.get_solicitudes_by_garage(garage_id, request.args.get('status'))
    return jsonify([r.to_dict() for r in solicitudes])


@subscriptions_bp.route('/requests/<request_id>/approve', methods=['POST'])
@role_required(ROLE_OWNER)
def approve_request(request_id):
    owned_garage(SubscriptionRepository.get_solicitud(request_id).garage_id)
    return jsonify(SubscriptionRepository.aprobar_solicitud(request_id))


@subscriptions_bp.route('/requests/<request_id>/reject', methods=['POST'])
@role_required(ROLE_OWNER)
def reject_request(request_id):
    owned_garage(SubscriptionRepository.get_solicitud(request_id).garage_id)
    return jsonify(SubscriptionRepository.rechazar_solicitud(request_id).to_dict())
