import json
import os

import firebase_admin
import resend
import sentry_sdk
import stripe
from firebase_admin import auth, credentials, firestore
from flask import current_app
from sentry_sdk.integrations.flask import FlaskIntegration

from exavy.app_context import AppContext
from exavy.logging_config import get_logger
from exavy.services.mail_service import ResendMailer

EXTENSION_KEY = 'exavy'


def init_sentry(config) -> bool:
    if not config.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=config.sentry_traces_sample_rate,
        send_default_pii=False,
        environment=config.sentry_environment,
        release=config.sentry_release,
    )
    return True


def init_firestore(config):
    if os.path.exists(config.firebase_credentials_path):
        cred = credentials.Certificate(config.firebase_credentials_path)
    else:
        raw = config.firebase_credentials_json
        if not raw:
            raise RuntimeError('Missing firebase-credentials.json and FIREBASE_CREDENTIALS env var.')
        cred = credentials.Certificate(json.loads(raw))
    if not firebase_admin._apps:
        firebase_admin.initialize_app(cred)
    return firestore.client()


def build_app_context(config) -> AppContext:
    """Construct the process-wide clients once, at app start."""
    logger = get_logger()
    stripe.api_key = config.stripe_secret_key or None
    return AppContext(
        config,
        db=init_firestore(config),
        firestore_module=firestore,
        auth_module=auth,
        mailer=ResendMailer(config.resend_api_key, config.mail_from, resend_module=resend, logger=logger),
        stripe_module=stripe,
        sentry_sdk=sentry_sdk if config.sentry_dsn else None,
        logger=logger,
    )


def init_extensions(app, app_ctx) -> None:
    app.extensions.setdefault(EXTENSION_KEY, {})
    app.extensions[EXTENSION_KEY]['ctx'] = app_ctx


def get_app_context(app=None) -> AppContext:
    target = app or current_app
    return target.extensions[EXTENSION_KEY]['ctx']
