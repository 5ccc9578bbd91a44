"""Authentication helpers shared across the JSON blueprints."""

from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar, cast

from flask import jsonify, session
from flask_login import current_user, logout_user

from questgate.models import UserRole

F = TypeVar('F', bound=Callable[..., object])


def _unauthenticated():
    return jsonify({'error': 'Authentication required', 'code': 'unauthorized'}), 401


def login_required_json(func: F) -> F:
    """Decorator requiring an authenticated, active user."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return _unauthenticated()

        if not current_user.is_active:
            logout_user()
            session.clear()
            return jsonify({'error': 'Your account is inactive', 'code': 'inactive'}), 403

        return func(*args, **kwargs)
    return cast(F, wrapper)


def admin_required(func: F) -> F:
    """Decorator to ensure the current user has admin privileges."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return _unauthenticated()

        if not current_user.has_role(UserRole.ADMIN):
            return jsonify({
                'error': 'You need administrator privileges for this action',
                'code': 'forbidden',
            }), 403

        return func(*args, **kwargs)

    return cast(F, wrapper)


__all__ = [
    'login_required_json',
    'admin_required',
]
