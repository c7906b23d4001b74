# oncotrack_pkg/auth/routes.py
from flask import Blueprint, jsonify, current_app, g
from sqlalchemy.exc import IntegrityError
from .. import db
from ..models import User
from ..utils import create_access_token, login_required, get_json_body
from ..audit.services import create_audit_log
from .services import get_or_create_role, DEFAULT_ROLE_PERMISSIONS

auth_bp = Blueprint('auth_bp', __name__)


@auth_bp.route('/register', methods=['POST'])
def register():
    data = get_json_body()
    if not data:
        return jsonify({"success": False, "error": "Request body must be JSON."}), 400
    email = data.get('email')
    password = data.get('password')
    full_name = data.get('full_name', '')
    role_name = data.get('role', 'patient')

    if not all(isinstance(value, str) and value for value in (email, password)):
        return jsonify({"success": False, "error": "Email and password are required."}), 400

    if not isinstance(full_name, str) or not isinstance(role_name, str):
        return jsonify({"success": False, "error": "full_name and role must be strings."}), 400

    if len(password) < 8: # Basic password policy
        return jsonify({"success": False, "error": "Password must be at least 8 characters long."}), 400

    if role_name not in DEFAULT_ROLE_PERMISSIONS:
        return jsonify({"success": False, "error": f"Role must be one of: {', '.join(DEFAULT_ROLE_PERMISSIONS)}."}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({"success": False, "error": "User with this email already exists."}), 409

    try:
        new_user = User(email=email, full_name=full_name)
        new_user.set_password(password)
        new_user.roles.append(get_or_create_role(role_name))
        db.session.add(new_user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning(f"[Auth] IntegrityError registering {email}")
        return jsonify({"success": False, "error": "User with this email already exists."}), 409

    current_app.logger.info(f"[Auth] New {role_name} registered: {new_user.id}")
    return jsonify({
        "success": True,
        "user": new_user.to_dict(include_permissions=False)
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = get_json_body()
    email = data.get('email')
    password = data.get('password')
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        return jsonify({"success": False, "error": "Email and password are required."}), 400

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        create_audit_log(action="LOGIN_FAILURE", change_details={"email_attempt": email}, commit=True)
        current_app.logger.warning(f"[Auth] Failed login attempt for: {email}")
        return jsonify({"success": False, "error": "Invalid email or password."}), 401

    if not user.is_active:
        current_app.logger.warning(f"[Auth] Inactive user login attempt: {user.id}")
        return jsonify({"success": False, "error": "User account is inactive."}), 403

    g.current_user = user
    create_audit_log(action="LOGIN_SUCCESS", target_model="User", target_id=user.id, commit=True)

    access_token = create_access_token(user_id=user.id, user_permissions=user.get_permissions())
    current_app.logger.info(f"[Auth] User {user.id} logged in.")
    return jsonify({
        "success": True,
        "access_token": access_token,
        "user": user.to_dict()
    }), 200


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_current_user_profile():
    return jsonify({"success": True, "user": g.current_user.to_dict()}), 200
