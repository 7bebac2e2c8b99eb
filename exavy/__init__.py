import uuid

from flask import Flask, g, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import load_config
from .errors import ServiceError
from .extensions import build_app_context, get_app_context, init_extensions, init_sentry
from .logging_config import configure_logging, get_logger


def create_app(config=None, app_ctx=None):
    """App factory entrypoint.

    Tests pass in their own ``config`` and a prebuilt ``app_ctx`` backed by
    fakes; production builds both from the environment.
    """
    config = config or load_config()
    configure_logging(config.log_level)
    if app_ctx is None:
        init_sentry(config)
        app_ctx = build_app_context(config)

    app = Flask(__name__)
    app.secret_key = config.flask_secret_key or uuid.uuid4().hex
    if config.trusted_proxy_count:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=config.trusted_proxy_count)
    init_extensions(app, app_ctx)

    from .blueprints import otp_bp, payments_bp, subscription_bp

    app.register_blueprint(otp_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(payments_bp)

    register_request_hooks(app)
    register_error_handlers(app)

    @app.route('/healthz')
    def healthz():
        return jsonify({'status': 'ok'}), 200

    return app


def register_request_hooks(app):
    @app.before_request
    def attach_request_context():
        request_id = str(request.headers.get('X-Request-ID', '') or '').strip()[:120] or uuid.uuid4().hex
        g.request_id = request_id
        sentry = get_app_context().sentry_sdk
        if not sentry:
            return
        sentry.set_tag('request.id', request_id)
        sentry.set_tag('route.path', request.path)
        sentry.set_tag('route.method', request.method)
        sentry.set_tag('route.auth_header_present', 'true' if request.headers.get('Authorization') else 'false')

    @app.after_request
    def attach_response_context(response):
        request_id = str(getattr(g, 'request_id', '') or '').strip()
        if request_id:
            response.headers['X-Request-ID'] = request_id
        return response


def register_error_handlers(app):
    logger = get_logger('http')

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {error.error_code}: {error.message}")
        return get_app_context().build_error_response(error)
