from flask import Blueprint, current_app, jsonify
from models import User, db
from models.User import ROLES
from flask_jwt_extended import decode_token
from helpers import (get_current_user, is_authenticated, is_valid_password, request_data,
                     generate_access_token, generate_reset_token, send_password_reset_email)
from datetime import datetime, timedelta

bp = Blueprint('auth', __name__)

PASSWORD_POLICY = "Password must be at least 8 characters long, include both uppercase and lowercase letters, at least one digit, and one special character."

@bp.route('/api/auth/register', methods=['POST'])
def register():
    """
    Registers a new user account.

    Accepts ``username``, ``email``, ``password`` and an optional ``role``
    (``reader`` or ``author``, defaulting to ``reader``) as JSON or form data.

    Returns:
        Response: 201 with the created user, 400 on invalid input or duplicates,
        503 when registration is disabled.
    """
    if current_app.config["REGISTRATION_DISABLED"]:
        return jsonify({"error": "Registration is temporarily closed."}), 503
    data = request_data()
    username = (data.get("username") or "").strip().lower()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password")
    role = (data.get("role") or "reader").lower()

    if not username or not email:
        return jsonify({"error": "Username and email are required"}), 400
    if role not in ROLES or role == "admin":
        return jsonify({"error": "Invalid role"}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"error": "Username already exists"}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({"error": "Email already exists"}), 400
    if not is_valid_password(password):
        return jsonify({"error": PASSWORD_POLICY}), 400

    user = User(username=username, email=email, role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"Registered user {user.id} ({user.role}).")
    return jsonify({"user": user.to_dict(), "message": "Registration successful"}), 201

@bp.route('/api/auth/login', methods=['POST'])
def login():
    """
    Handles user login.

    The user is looked up by username or email. Five consecutive failed
    attempts lock the account for 15 minutes; the failure counter resets
    after 24 hours without failures. A successful login sets the signed
    ``access_token`` cookie carrying the user id and role.

    Returns:
        Response: 200 with the user on success, 401 on bad credentials,
        423 when the account is locked.
    """
    data = request_data()
    identifier = (data.get("username") or data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    user = User.query.filter((User.username == identifier) | (User.email == identifier)).first()
    now = datetime.utcnow()

    if not user:
        return jsonify({"error": "Login failed. Please check your credentials."}), 401

    if user.last_failed_attempt and (now - user.last_failed_attempt > timedelta(hours=24)):
        user.failed_attempts = 0
        db.session.commit()

    if user.locked_until and now < user.locked_until:
        return jsonify({"error": "Your account is locked. Please try again later."}), 423

    if not user.check_password(password):
        user.failed_attempts = (user.failed_attempts or 0) + 1
        user.last_failed_attempt = now
        if user.failed_attempts >= 5:
            user.locked_until = now + timedelta(minutes=15)
            current_app.logger.warning(f"User {user.id} locked after {user.failed_attempts} failed logins.")
            db.session.commit()
            return jsonify({"error": "Your account has been locked for 15 minutes due to too many failed login attempts."}), 423
        db.session.commit()
        return jsonify({"error": "Login failed. Please check your credentials."}), 401

    user.failed_attempts = 0
    user.last_failed_attempt = None
    user.locked_until = None
    db.session.commit()

    access_token = generate_access_token(user)
    resp = jsonify({"user": user.to_dict()})
    resp.set_cookie("access_token", access_token, httponly=True, samesite="Lax")
    return resp

@bp.route('/api/auth/logout', methods=['POST'])
def logout():
    resp = jsonify({"message": "Logged out"})
    resp.delete_cookie("access_token")
    return resp

@bp.route('/api/auth/me', methods=['GET'])
@is_authenticated
def me():
    return jsonify({"user": get_current_user().to_dict()})

@bp.route('/api/auth/forgot-password', methods=['POST'])
def forgot_password():
    """
    Emails a password reset token to the account registered under ``email``.

    The response is identical whether or not the address is known.
    """
    email = (request_data().get("email") or "").strip().lower()
    user = User.query.filter_by(email=email).first()
    if user:
        send_password_reset_email(user.email, generate_reset_token(user), user.username)
    return jsonify({"message": "If the address is registered, a password reset link has been sent."})

@bp.route('/api/auth/reset-password/<token>', methods=['POST'])
def reset_password(token):
    """
    Resets the user's password using a token issued by ``forgot_password``.

    Returns:
        Response: 200 once the password is changed, 400 for an invalid or
        expired token or a password that fails the policy.
    """
    try:
        data = decode_token(token)
    except Exception as e:
        current_app.logger.warning(f"Rejected password reset token: {e}")
        return jsonify({"error": "The password reset link is invalid or has expired."}), 400
    if data.get("action") != "reset_password":
        return jsonify({"error": "Invalid password reset token."}), 400
    user = User.query.get(int(data.get("sub")))
    if not user:
        return jsonify({"error": "User not found."}), 404

    new_password = request_data().get("password")
    if not is_valid_password(new_password):
        return jsonify({"error": PASSWORD_POLICY}), 400
    user.set_password(new_password)
    user.failed_attempts = 0
    user.locked_until = None
    db.session.commit()
    return jsonify({"message": "Your password has been reset. You may now log in."})
