"""Admin credentials: JWT issue/verify and the Flask-Login loaders."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import current_app, jsonify
import jwt

from livequiz import db, login_manager
from livequiz.models import Admin, Lobby

JWT_ALGORITHM = 'HS256'


def issue_token(admin_id: int) -> str:
    now = datetime.now(timezone.utc)
    hours = int(current_app.config.get('JWT_EXPIRATION_HOURS', 24))
    payload = {
        'adminId': admin_id,
        'iat': now,
        'exp': now + timedelta(hours=hours),
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Optional[int]:
    """Return the admin id carried by a valid token, or None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    admin_id = payload.get('adminId')
    return int(admin_id) if admin_id is not None else None


def admin_from_token(token: str) -> Optional[Admin]:
    admin_id = decode_token(token)
    if admin_id is None:
        return None
    # The admin must still exist
    return db.session.get(Admin, admin_id)


@login_manager.user_loader
def load_admin(admin_id):
    return db.session.get(Admin, int(admin_id))


@login_manager.request_loader
def load_admin_from_request(request):
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token:
        return None
    return admin_from_token(token.strip())


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': 'Authentication required'}), 401


class AdminAuth:
    """Auth collaborator handed to the session engine."""

    def __init__(self, app):
        self._app = app

    def verify_token(self, token: str) -> Optional[dict]:
        with self._app.app_context():
            admin = admin_from_token(token)
            return admin.to_dict() if admin else None

    def owns_lobby(self, admin_id: int, lobby_id: str) -> bool:
        with self._app.app_context():
            lobby = Lobby.query.filter_by(lobby_id=lobby_id).first()
            return lobby is not None and lobby.admin_id == admin_id
