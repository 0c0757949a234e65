"""
Session manager.

Issues and persists access/refresh token pairs, resolves the user behind an
access token, rotates refresh tokens and keeps track of the role the user is
currently acting as.
"""
import logging
import secrets
from datetime import datetime, timedelta
from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError

from errors import AuthError, Forbidden, ValidationError
from models import db, AuthSession, Role, User, UserRole, ROLE_OWNER, ROLE_EMPLOYEE, ROLE_USER

logger = logging.getLogger(__name__)

# Default active role, highest privilege first
ROLE_PRIORITY = [ROLE_OWNER, ROLE_EMPLOYEE, ROLE_USER]


class RefreshTokenAlreadyUsed(AuthError):
    pass


def default_role(roles):
    for role in ROLE_PRIORITY:
        if role in roles:
            return role
    return roles[0] if roles else None


class SessionManager:

    def __init__(self, secret_key=None, access_ttl=None, refresh_ttl=None):
        self._secret_key = secret_key
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl

    @property
    def access_ttl(self):
        return self._access_ttl or current_app.config['ACCESS_TOKEN_TTL']

    @property
    def refresh_ttl(self):
        return self._refresh_ttl or current_app.config['REFRESH_TOKEN_TTL']

    def _serializer(self):
        secret = self._secret_key or current_app.config['SECRET_KEY']
        return URLSafeTimedSerializer(secret, salt='upark-access')

    def _issue_tokens(self, session):
        # The nonce keeps tokens issued within the same second distinct
        session.access_token = self._serializer().dumps({
            'sid': session.id,
            'uid': session.user_id,
            'n': secrets.token_hex(8),
        })
        session.refresh_token = secrets.token_urlsafe(32)
        session.expires_at = datetime.now() + timedelta(seconds=self.refresh_ttl)

    # ------------------------------------------------------------------
    # Persisting sessions
    # ------------------------------------------------------------------

    def save_session(self, user):
        """Create and persist a new token pair for ``user``."""
        session = AuthSession(
            id=secrets.token_hex(16),
            user_id=user.id,
            active_role=default_role(user.roles),
        )
        self._issue_tokens(session)
        db.session.add(session)
        db.session.commit()
        logger.info('Session saved for user %s (role %s)', user.id, session.active_role)
        return session

    def get_session(self, access_token):
        """
        Resolve an access token to its stored session.

        Returns None for malformed, expired or revoked tokens.
        """
        if not access_token:
            return None
        try:
            payload = self._serializer().loads(access_token, max_age=self.access_ttl)
        except SignatureExpired:
            logger.info('Access token expired')
            return None
        except BadSignature:
            logger.warning('Rejected access token with bad signature')
            return None

        session = db.session.get(AuthSession, payload.get('sid'))
        # A rotated or cleared token no longer matches the stored one
        if session is None or session.access_token != access_token:
            return None
        return session

    def get_user(self, access_token):
        session = self.get_session(access_token)
        return session.user if session else None

    def get_user_id(self, access_token):
        user = self.get_user(access_token)
        return user.id if user else None

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def _rotate(self, refresh_token):
        session = AuthSession.query.filter_by(refresh_token=refresh_token).first()
        if session is None:
            used = AuthSession.query.filter_by(previous_refresh_token=refresh_token).first()
            if used is not None:
                raise RefreshTokenAlreadyUsed('already_used')
            raise AuthError('Refresh token desconocido')

        if session.expires_at < datetime.now():
            raise AuthError('Sesión expirada')

        session.previous_refresh_token = session.refresh_token
        self._issue_tokens(session)
        db.session.commit()
        return session

    def refresh_session(self, refresh_token):
        """
        Exchange a refresh token for a new token pair.

        A token that was already rotated is accepted while its session is
        still valid, in which case the current session is returned unchanged.
        Any other failure clears the session and returns None.
        """
        try:
            session = self._rotate(refresh_token)
            logger.info('Session refreshed for user %s', session.user_id)
            return session
        except RefreshTokenAlreadyUsed:
            session = AuthSession.query.filter_by(previous_refresh_token=refresh_token).first()
            if session.expires_at >= datetime.now():
                logger.warning('Refresh token already used, session still valid')
                return session
            self.clear_session(session)
            return None
        except (AuthError, SQLAlchemyError) as e:
            db.session.rollback()
            logger.error('Error refreshing session: %s', e)
            stale = AuthSession.query.filter_by(refresh_token=refresh_token).first()
            if stale is not None:
                self.clear_session(stale)
            return None

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def save_active_role(self, session, role):
        """Switch the role the session acts as; it must be one of the user's roles."""
        roles = session.user.roles
        if role not in roles:
            raise Forbidden(f'El usuario no tiene el rol {role}')
        session.active_role = role
        db.session.commit()
        logger.info('Active role saved: %s', role)
        return session

    def get_active_role(self, session):
        if session is None:
            return None
        # Roles may have been revoked since the session was created
        if session.active_role not in session.user.roles:
            session.active_role = default_role(session.user.roles)
            db.session.commit()
        return session.active_role

    def update_user_roles(self, user_id, new_roles):
        """Make ``user_id`` hold exactly ``new_roles``."""
        user = db.session.get(User, user_id)
        if user is None:
            return None
        known = {r.nombre: r for r in Role.query.filter(Role.nombre.in_(new_roles)).all()}
        missing = set(new_roles) - set(known)
        if missing:
            raise ValidationError(f'Roles desconocidos: {", ".join(sorted(missing))}')

        current = {ur.role.nombre: ur for ur in user.user_roles}
        for name, ur in current.items():
            if name not in new_roles:
                db.session.delete(ur)
        for name in new_roles:
            if name not in current:
                db.session.add(UserRole(user_id=user.id, role_id=known[name].id))
        db.session.commit()
        db.session.refresh(user)
        logger.info('Roles updated for %s: %s', user_id, user.roles)
        return user

    # ------------------------------------------------------------------
    # Clearing
    # ------------------------------------------------------------------

    def clear_session(self, session):
        if session is None:
            return
        try:
            db.session.delete(session)
            db.session.commit()
            logger.info('Session cleared for user %s', session.user_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Error clearing session: %s', e)

    def clear_user_sessions(self, user_id):
        AuthSession.query.filter_by(user_id=user_id).delete()
        db.session.commit()


session_manager = SessionManager()
