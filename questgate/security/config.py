"""HTTP hardening for the JSON API: response headers, session cookie and body size."""

from flask import abort, current_app, request

# Sent on every response; nothing served here is HTML.
RESPONSE_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'no-referrer',
    'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
}

# Review queues, drafts and notifications differ per user.
NO_STORE_PREFIXES = ('/admin', '/api', '/auth')

DEFAULT_MAX_BODY = 1024 * 1024


def configure_security_headers(app):
    @app.after_request
    def add_security_headers(response):
        for header, value in RESPONSE_HEADERS.items():
            response.headers.setdefault(header, value)

        if request.path.startswith(NO_STORE_PREFIXES):
            response.headers['Cache-Control'] = 'no-store'

        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    return app


def configure_secure_session(app):
    """Pin the session cookie flags; SESSION_COOKIE_SECURE stays with the config class."""
    app.config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE='Lax',
        PERMANENT_SESSION_LIFETIME=2 * 60 * 60,
    )
    return app


def validate_input_length(app):
    """Refuse request bodies above ``MAX_BODY_BYTES`` before any view parses them."""
    limit = app.config.get('MAX_BODY_BYTES', DEFAULT_MAX_BODY)

    @app.before_request
    def limit_request_size():
        if request.content_length and request.content_length > limit:
            current_app.logger.warning(
                f"Refused {request.method} {request.path}: body of {request.content_length} bytes"
            )
            abort(413)

    return app


# Flask-Limiter accepts callables, so limits follow the app config at request time.
def auth_rate_limit():
    return current_app.config.get('AUTH_RATE_LIMIT', '5 per minute')


def admin_rate_limit():
    return current_app.config.get('ADMIN_RATE_LIMIT', '200 per hour')


def api_rate_limit():
    return current_app.config.get('API_RATE_LIMIT', '100 per hour')


__all__ = [
    'configure_security_headers',
    'configure_secure_session',
    'validate_input_length',
    'auth_rate_limit',
    'admin_rate_limit',
    'api_rate_limit',
]
