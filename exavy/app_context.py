"""Per-app bundle of clients and helpers handed to the API service handlers.

Built once by ``create_app`` and stored in ``app.extensions``; nothing here is
a module-level singleton, so tests build their own with fakes.
"""

import time

from flask import jsonify

from exavy.logging_config import get_logger
from exavy.services import auth_service, rate_limit_service


class AppContext:
    def __init__(
        self,
        config,
        *,
        db,
        firestore_module,
        auth_module,
        mailer,
        stripe_module=None,
        sentry_sdk=None,
        logger=None,
        time_module=time,
        rate_limiter=None,
    ):
        self.config = config
        self.db = db
        self.firestore_module = firestore_module
        self.auth_module = auth_module
        self.mailer = mailer
        self.stripe = stripe_module
        self.sentry_sdk = sentry_sdk
        self.logger = logger or get_logger()
        self.time_module = time_module
        self.rate_limiter = rate_limiter or rate_limit_service.InMemoryRateLimiter()

    jsonify = staticmethod(jsonify)

    def now(self):
        return self.time_module.time()

    def verify_firebase_token(self, request):
        return auth_service.verify_firebase_token(request, auth_module=self.auth_module, logger=self.logger)

    def is_admin_user(self, decoded_token):
        return auth_service.is_admin_user(
            decoded_token,
            admin_uids=self.config.admin_uids,
            admin_emails=self.config.admin_emails,
        )

    def check_rate_limit(self, key, limit, window_seconds):
        return rate_limit_service.check_rate_limit(
            key,
            limit,
            window_seconds,
            self.now(),
            firestore_enabled=self.config.rate_limit_firestore_enabled,
            db=self.db,
            firestore_module=self.firestore_module,
            fallback=self.rate_limiter,
            logger=self.logger,
        )

    def build_rate_limited_response(self, message, retry_after):
        retry_after = int(max(1, retry_after))
        response = jsonify({
            'error': message,
            'retry_after_seconds': retry_after,
        })
        response.status_code = 429
        response.headers['Retry-After'] = str(retry_after)
        return response

    def build_error_response(self, error):
        response = jsonify(error.to_payload())
        response.status_code = error.status_code
        retry_after = getattr(error, 'retry_after', None)
        if retry_after:
            response.headers['Retry-After'] = str(int(retry_after))
        return response

    @staticmethod
    def client_ip(request):
        # Forwarded headers are only honoured through ProxyFix (TRUSTED_PROXY_COUNT).
        return request.remote_addr or 'unknown'
