"""Session login for the JSON API."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, session
from flask_login import current_user, login_user, logout_user
from flask_wtf import FlaskForm
from sqlalchemy import select
from wtforms import BooleanField, PasswordField, StringField
from wtforms.validators import DataRequired, Email

from questgate.extensions import db, limiter
from questgate.models import User
from questgate.security.config import auth_rate_limit


class LoginForm(FlaskForm):
    class Meta:
        csrf = False

    email = StringField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired()])
    remember_me = BooleanField("Remember me")


auth_bp = Blueprint("auth", __name__)


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'username': user.username,
        'role': user.role.value,
        'is_admin': user.is_admin,
    }


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(auth_rate_limit)
def login():
    form = LoginForm()
    if not form.validate():
        return jsonify({'error': 'Invalid login payload', 'code': 'validation_error', 'fields': list(form.errors)}), 400

    email = form.email.data.strip().lower()
    user = db.session.execute(select(User).filter_by(email=email)).scalar_one_or_none()
    if user is None or not user.check_password(form.password.data):
        current_app.logger.warning(f"Failed login for {email}")
        return jsonify({'error': 'Invalid email or password', 'code': 'unauthorized'}), 401

    if not user.is_active:
        return jsonify({'error': 'Your account is inactive', 'code': 'inactive'}), 403

    login_user(user, remember=form.remember_me.data)
    current_app.logger.info(f"User {user.id} logged in")
    return jsonify(serialize_user(user))


@auth_bp.route("/logout", methods=["POST"])
def logout():
    if current_user.is_authenticated:
        logout_user()
    session.clear()
    return jsonify({'success': True})


@auth_bp.route("/me", methods=["GET"])
def me():
    if not current_user.is_authenticated:
        return jsonify({'error': 'Authentication required', 'code': 'unauthorized'}), 401
    return jsonify(serialize_user(current_user))
