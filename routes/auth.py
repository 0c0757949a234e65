from flask import Blueprint, g, jsonify

from auth import (
    get_user_roles, login_required, restore_current_user, save_device_token,
    sign_in, sign_out, sign_up,
)
from errors import AuthError, ValidationError
from routes import request_data
from session_manager import session_manager

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _session_response(user, session):
    return {
        'user': user.to_dict(),
        'session': session.to_dict(),
        'active_role': session.active_role,
    }


@auth_bp.route('/signup', methods=['POST'])
def signup():
    data = request_data()
    user, session = sign_up(data, data.get('device_token'))
    return jsonify(_session_response(user, session)), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request_data()
    user, session = sign_in(data.get('correo'), data.get('contrasena'), data.get('device_token'))
    return jsonify(_session_response(user, session))


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    sign_out(g.session)
    return jsonify({'message': 'Sesión cerrada'})


@auth_bp.route('/refresh', methods=['POST'])
def refresh():
    """Rotate the token pair; also used to restore the user on startup."""
    refresh_token = request_data().get('refresh_token')
    if not refresh_token:
        raise ValidationError('Missing refresh_token')
    user, session = restore_current_user(refresh_token)
    if session is None:
        raise AuthError('No se pudo restaurar la sesión')
    return jsonify(_session_response(user, session))


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({
        'user': g.user.to_dict(),
        'active_role': session_manager.get_active_role(g.session),
    })


@auth_bp.route('/roles', methods=['GET'])
@login_required
def roles():
    return jsonify(get_user_roles(g.user.id))


@auth_bp.route('/session/role', methods=['PUT'])
@login_required
def change_role():
    role = request_data().get('role')
    if not role:
        raise ValidationError('Missing role')
    session_manager.save_active_role(g.session, role)
    return jsonify({'active_role': g.session.active_role})


@auth_bp.route('/device-token', methods=['PUT'])
@login_required
def device_token():
    token = request_data().get('token')
    if not token:
        raise ValidationError('Missing token')
    if not save_device_token(g.user.id, token):
        return jsonify({'error': 'No se pudo guardar el token'}), 500
    return jsonify({'message': 'Token guardado'})
