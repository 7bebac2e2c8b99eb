"""Business logic handlers for subscription and usage APIs."""

from exavy.services import entitlement_service, subscription_service


def _authenticate(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return None, (app_ctx.jsonify({'error': 'Unauthorized'}), 401)
    return decoded_token, None


def get_subscription(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    summary = entitlement_service.build_usage_summary(
        decoded_token['uid'],
        is_admin=app_ctx.is_admin_user(decoded_token),
        db=app_ctx.db,
        now_ts=app_ctx.now(),
    )
    return app_ctx.jsonify(summary)


def start_trial(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    result = subscription_service.create_trial_subscription(
        decoded_token['uid'],
        db=app_ctx.db,
        firestore_module=app_ctx.firestore_module,
        now_ts=app_ctx.now(),
        logger=app_ctx.logger,
    )
    message = '3-day premium trial activated' if result['created'] else 'Subscription already exists'
    return app_ctx.jsonify({'ok': True, 'message': message, **result})


def check_usage(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    result = entitlement_service.check_limit(
        decoded_token['uid'],
        request.args.get('resource', ''),
        is_admin=app_ctx.is_admin_user(decoded_token),
        db=app_ctx.db,
        now_ts=app_ctx.now(),
        logger=app_ctx.logger,
    )
    return app_ctx.jsonify(result)


def record_usage(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    payload = request.get_json(silent=True) or {}
    current = entitlement_service.record_usage(
        decoded_token['uid'],
        payload.get('resource', ''),
        db=app_ctx.db,
        firestore_module=app_ctx.firestore_module,
        now_ts=app_ctx.now(),
    )
    return app_ctx.jsonify({'ok': True, 'current': current})


def consume_usage(app_ctx, request):
    decoded_token, error_response = _authenticate(app_ctx, request)
    if error_response:
        return error_response
    payload = request.get_json(silent=True) or {}
    result = entitlement_service.try_consume(
        decoded_token['uid'],
        payload.get('resource', ''),
        is_admin=app_ctx.is_admin_user(decoded_token),
        db=app_ctx.db,
        firestore_module=app_ctx.firestore_module,
        now_ts=app_ctx.now(),
        logger=app_ctx.logger,
    )
    return app_ctx.jsonify(result)
