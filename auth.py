"""
Account registration, sign in/out and role lookup.
"""
import logging
from functools import wraps
from flask import g, request
from sqlalchemy.exc import SQLAlchemyError

from errors import AuthError, Forbidden, ValidationError
from models import db, DeviceToken, Role, User, UserRole, ROLE_USER
from session_manager import session_manager

logger = logging.getLogger(__name__)

SIGN_UP_FIELDS = ('nombre', 'usuario', 'cedula', 'telefono', 'correo', 'contrasena')


def save_device_token(user_id, token):
    """Upsert the push-notification token of a user's device."""
    if not token:
        return False
    try:
        row = db.session.get(DeviceToken, user_id)
        if row is None:
            db.session.add(DeviceToken(user_id=user_id, token=token))
        else:
            row.token = token
        db.session.commit()
        logger.debug('Device token saved for %s', user_id)
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error('Error saving device token: %s', e)
        return False


def delete_device_token(user_id):
    try:
        DeviceToken.query.filter_by(user_id=user_id).delete()
        db.session.commit()
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error('Error deleting device token: %s', e)
        return False


def get_user_roles(user_id):
    """Role names held by ``user_id``; empty list if the lookup fails."""
    try:
        rows = (
            db.session.query(Role.nombre)
            .join(UserRole, UserRole.role_id == Role.id)
            .filter(UserRole.user_id == user_id)
            .all()
        )
        return sorted(nombre for (nombre,) in rows)
    except SQLAlchemyError as e:
        logger.error('Error fetching roles for %s: %s', user_id, e)
        return []


def grant_role(user, role_name):
    """Give ``user`` the role ``role_name`` unless it already has it."""
    role = Role.query.filter_by(nombre=role_name).first()
    if role is None:
        logger.error("Role '%s' not found", role_name)
        return False
    exists = UserRole.query.filter_by(user_id=user.id, role_id=role.id).first()
    if exists is None:
        user.user_roles.append(UserRole(role=role))
        logger.info("Role '%s' granted to %s", role_name, user.id)
    return True


def sign_up(data, device_token=None):
    """
    Register a new account with the default 'user' role and open a session.

    Returns:
        tuple: (user, session)
    """
    missing = [f for f in SIGN_UP_FIELDS if not data.get(f)]
    if missing:
        raise ValidationError(f'Missing required fields: {", ".join(missing)}')

    if User.query.filter_by(correo=data['correo']).first():
        raise ValidationError('El correo ya está registrado')
    if User.query.filter_by(cedula=str(data['cedula'])).first():
        raise ValidationError('La cédula ya está registrada')

    user = User(
        nombre=data['nombre'],
        usuario=data['usuario'],
        cedula=str(data['cedula']),
        telefono=data['telefono'],
        correo=data['correo'],
        direccion=data.get('direccion'),
    )
    user.set_password(data['contrasena'])
    db.session.add(user)
    db.session.flush()
    grant_role(user, ROLE_USER)
    db.session.commit()

    session = session_manager.save_session(user)
    save_device_token(user.id, device_token)
    logger.info('User %s registered', user.id)
    return user, session


def sign_in(correo, contrasena, device_token=None):
    """
    Check credentials and open a session.

    Returns:
        tuple: (user, session)
    """
    user = User.query.filter_by(correo=correo).first() if correo else None
    if user is None or not user.check_password(contrasena or ''):
        raise AuthError('Credenciales inválidas')

    session = session_manager.save_session(user)
    save_device_token(user.id, device_token)
    logger.info('User %s signed in, roles %s', user.id, user.roles)
    return user, session


def sign_out(session):
    if session is None:
        return
    delete_device_token(session.user_id)
    session_manager.clear_session(session)


def restore_current_user(refresh_token):
    """
    Restore a user from a stored refresh token.

    Returns:
        tuple: (user, session), or (None, None) when the session cannot be restored
    """
    session = session_manager.refresh_session(refresh_token)
    if session is None:
        return None, None
    return session.user, session


# ----------------------------------------------------------------------
# Request guards
# ----------------------------------------------------------------------

def _bearer_token():
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip()
    return None


def login_required(view):
    """Resolve the bearer token into ``g.session`` and ``g.user``."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        session = session_manager.get_session(_bearer_token())
        if session is None:
            raise AuthError('Sesión inválida o expirada')
        g.session = session
        g.user = session.user
        return view(*args, **kwargs)
    return wrapped


def role_required(*roles):
    """Allow the view only while the session acts as one of ``roles``."""
    def decorator(view):
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            active = session_manager.get_active_role(g.session)
            if active not in roles:
                raise Forbidden(f'Se requiere el rol {" o ".join(roles)}')
            return view(*args, **kwargs)
        return wrapped
    return decorator
