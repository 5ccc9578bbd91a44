"""Application factory for the QuestGate content workflow engine."""

from __future__ import annotations

from flask import Flask, jsonify

from questgate.blueprints.admin import admin_bp
from questgate.blueprints.auth import auth_bp
from questgate.blueprints.contributor import contributor_bp
from questgate.config import Config
from questgate.extensions import (
    db,
    migrate,
    login_manager,
    csrf,
    limiter,
)
from questgate.models import User
from questgate.security.config import (
    configure_security_headers,
    configure_secure_session,
    validate_input_length
)
from questgate.services.cache import CacheInvalidator
from questgate.services.errors import WorkflowError


def create_app(config_class=Config):
    """Create Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize Flask extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # JSON blueprints rely on the same-site session cookie instead of form tokens
    csrf.exempt(admin_bp)
    csrf.exempt(contributor_bp)
    csrf.exempt(auth_bp)

    # Configure security
    configure_security_headers(app)
    configure_secure_session(app)
    validate_input_length(app)

    app.extensions['questgate.cache'] = CacheInvalidator.from_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        return db.session.get(User, user_id)

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        return jsonify({'error': 'Authentication required', 'code': 'unauthorized'}), 401

    # Ensure models are registered for migrations
    import questgate.models  # noqa: F401

    # Register blueprints
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(admin_bp, url_prefix='/admin')
    app.register_blueprint(contributor_bp, url_prefix='/api')

    @app.errorhandler(WorkflowError)
    def workflow_error(error: WorkflowError):
        if error.status_code >= 500:
            app.logger.error(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(413)
    def payload_too_large(error):
        return jsonify({'error': 'Payload too large', 'code': 'payload_too_large'}), 413

    # Register CLI commands
    from questgate.commands import register_commands
    register_commands(app)

    return app


__all__ = ["create_app"]
