"""Business logic handlers for email verification APIs."""

from exavy.services import otp_service
from exavy.services.rate_limit_service import normalize_key_part


def send_otp(app_ctx, request):
    config = app_ctx.config
    client_key = normalize_key_part(app_ctx.client_ip(request), fallback='unknown_ip')
    allowed, retry_after = app_ctx.check_rate_limit(
        key=f"otp_send:{client_key}",
        limit=config.otp_send_rate_limit_max_requests,
        window_seconds=config.otp_send_rate_limit_window_seconds,
    )
    if not allowed:
        return app_ctx.build_rate_limited_response('Too many code requests. Please wait.', retry_after)

    payload = request.get_json(silent=True) or {}
    result = otp_service.issue_code(
        payload.get('email', ''),
        db=app_ctx.db,
        firestore_module=app_ctx.firestore_module,
        mailer=app_ctx.mailer,
        now_ts=app_ctx.now(),
        pepper=config.effective_otp_pepper,
        app_name=config.app_name,
        logger=app_ctx.logger,
    )
    return app_ctx.jsonify(result)


def verify_otp(app_ctx, request):
    config = app_ctx.config
    client_key = normalize_key_part(app_ctx.client_ip(request), fallback='unknown_ip')
    allowed, retry_after = app_ctx.check_rate_limit(
        key=f"otp_verify_ip:{client_key}",
        limit=config.otp_verify_rate_limit_max_requests * 5,
        window_seconds=config.otp_verify_rate_limit_window_seconds,
    )
    if not allowed:
        return app_ctx.build_rate_limited_response('Too many verification attempts. Please wait.', retry_after)

    payload = request.get_json(silent=True) or {}
    email = otp_service.normalize_email(payload.get('email', ''))
    code = payload.get('code', '')
    if isinstance(code, str):
        code = code.strip()

    if email:
        allowed, retry_after = app_ctx.check_rate_limit(
            key=f"otp_verify_email:{otp_service.email_key(email)}",
            limit=config.otp_verify_rate_limit_max_requests,
            window_seconds=config.otp_verify_rate_limit_window_seconds,
        )
        if not allowed:
            return app_ctx.build_rate_limited_response('Too many verification attempts. Please wait.', retry_after)

    result = otp_service.verify_code(
        email,
        code,
        db=app_ctx.db,
        firestore_module=app_ctx.firestore_module,
        now_ts=app_ctx.now(),
        pepper=config.effective_otp_pepper,
        logger=app_ctx.logger,
    )
    return app_ctx.jsonify(result)
