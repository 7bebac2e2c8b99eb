import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEV_ENV_NAMES = {'development', 'dev', 'local', 'test'}


def safe_int_env(name, default=0, minimum=1, maximum=100000):
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        value = int(default)
    return min(max(value, minimum), maximum)


def safe_float_env(name, default=0.0):
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        return default
    return min(max(value, 0.0), 1.0)


def env_flag(name, default='0'):
    return str(os.getenv(name, default)).strip().lower() in {'1', 'true', 'yes', 'on'}


def env_str(name, default=''):
    return (os.getenv(name, default) or default).strip()


def env_csv_set(name, lower=False):
    values = set()
    for part in os.getenv(name, '').split(','):
        part = part.strip()
        if part:
            values.add(part.lower() if lower else part)
    return frozenset(values)


def runtime_environment():
    return (
        os.getenv('SENTRY_ENVIRONMENT')
        or os.getenv('FLASK_ENV')
        or os.getenv('ENV')
        or ('production' if os.getenv('RENDER') else 'development')
    ).strip().lower()


@dataclass(frozen=True)
class AppConfig:
    """Central config object, read from the environment when constructed."""

    flask_secret_key: str = field(default_factory=lambda: env_str('FLASK_SECRET_KEY'))
    log_level: str = field(default_factory=lambda: env_str('LOG_LEVEL', 'INFO').upper())
    app_name: str = field(default_factory=lambda: env_str('APP_NAME', 'EXAVY'))

    sentry_dsn: str = field(default_factory=lambda: env_str('SENTRY_DSN_BACKEND'))
    sentry_environment: str = field(default_factory=lambda: env_str('SENTRY_ENVIRONMENT', os.getenv('FLASK_ENV', 'production') or 'production'))
    sentry_release: str = field(default_factory=lambda: env_str('SENTRY_RELEASE', 'exavy'))
    sentry_traces_sample_rate: float = field(default_factory=lambda: safe_float_env('SENTRY_TRACES_SAMPLE_RATE', 0.0))

    firebase_credentials_path: str = field(default_factory=lambda: env_str('FIREBASE_CREDENTIALS_PATH', 'firebase-credentials.json'))
    firebase_credentials_json: str = field(default_factory=lambda: env_str('FIREBASE_CREDENTIALS'))
    admin_uids: frozenset = field(default_factory=lambda: env_csv_set('ADMIN_UIDS'))
    admin_emails: frozenset = field(default_factory=lambda: env_csv_set('ADMIN_EMAILS', lower=True))

    resend_api_key: str = field(default_factory=lambda: env_str('RESEND_API_KEY'))
    mail_from: str = field(default_factory=lambda: env_str('MAIL_FROM', 'EXAVY <onboarding@resend.dev>'))
    otp_pepper: str = field(default_factory=lambda: env_str('OTP_PEPPER'))
    otp_send_rate_limit_max_requests: int = field(default_factory=lambda: safe_int_env('OTP_SEND_RATE_LIMIT_MAX_REQUESTS', 10, minimum=1, maximum=1000))
    otp_send_rate_limit_window_seconds: int = field(default_factory=lambda: safe_int_env('OTP_SEND_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400))
    otp_verify_rate_limit_max_requests: int = field(default_factory=lambda: safe_int_env('OTP_VERIFY_RATE_LIMIT_MAX_REQUESTS', 10, minimum=1, maximum=1000))
    otp_verify_rate_limit_window_seconds: int = field(default_factory=lambda: safe_int_env('OTP_VERIFY_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400))
    rate_limit_firestore_enabled: bool = field(default_factory=lambda: env_flag('RATE_LIMIT_FIRESTORE_ENABLED', '1'))
    trusted_proxy_count: int = field(default_factory=lambda: safe_int_env('TRUSTED_PROXY_COUNT', 0, minimum=0, maximum=5))

    stripe_secret_key: str = field(default_factory=lambda: env_str('STRIPE_SECRET_KEY'))
    stripe_publishable_key: str = field(default_factory=lambda: env_str('STRIPE_PUBLISHABLE_KEY'))
    stripe_webhook_secret: str = field(default_factory=lambda: env_str('STRIPE_WEBHOOK_SECRET'))
    checkout_rate_limit_max_requests: int = field(default_factory=lambda: safe_int_env('CHECKOUT_RATE_LIMIT_MAX_REQUESTS', 6, minimum=1, maximum=100))
    checkout_rate_limit_window_seconds: int = field(default_factory=lambda: safe_int_env('CHECKOUT_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400))
    plan_monthly_price_cents: int = field(default_factory=lambda: safe_int_env('PLAN_MONTHLY_PRICE_CENTS', 600, minimum=1, maximum=10_000_000))
    plan_yearly_price_cents: int = field(default_factory=lambda: safe_int_env('PLAN_YEARLY_PRICE_CENTS', 6000, minimum=1, maximum=10_000_000))
    plan_currency: str = field(default_factory=lambda: env_str('PLAN_CURRENCY', 'usd').lower())

    @property
    def effective_otp_pepper(self):
        return self.otp_pepper or self.flask_secret_key


def load_config() -> AppConfig:
    load_dotenv()
    config = AppConfig()
    is_dev_like = runtime_environment() in DEV_ENV_NAMES
    if not is_dev_like and not config.flask_secret_key.strip():
        raise RuntimeError('FLASK_SECRET_KEY must be set in non-development environments.')
    return config
