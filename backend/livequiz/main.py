from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required

from livequiz.auth import issue_token
from livequiz.models import Admin

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the live quiz server!'})


@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    admin = Admin.query.filter_by(email=email).first() if email else None
    if admin and admin.check_password(data.get('password') or ''):
        login_user(admin, remember=True)
        return jsonify({'token': issue_token(admin.id), 'admin': admin.to_dict()})
    return jsonify({'error': 'Invalid email or password'}), 401


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})
