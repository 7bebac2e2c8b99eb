"""Business logic handlers for plan checkout and payment webhooks."""

from exavy.errors import ServiceError
from exavy.plans import FREE_LIMITS, PlanTier, get_plan_limits
from exavy.services import subscription_service
from exavy.services.rate_limit_service import normalize_key_part


def build_plan_catalog(config):
    return {
        PlanTier.MONTHLY.value: {
            'name': 'Premium (monthly)',
            'description': 'Unlimited study tools for one month',
            'price_cents': config.plan_monthly_price_cents,
            'currency': config.plan_currency,
            'duration_months': 1,
        },
        PlanTier.YEARLY.value: {
            'name': 'Premium (yearly)',
            'description': 'Unlimited study tools for one year',
            'price_cents': config.plan_yearly_price_cents,
            'currency': config.plan_currency,
            'duration_months': 12,
        },
    }


def get_plans(app_ctx):
    catalog = build_plan_catalog(app_ctx.config)
    plans = {
        plan_id: dict(plan, limits=get_plan_limits(plan_id).to_dict())
        for plan_id, plan in catalog.items()
    }
    return app_ctx.jsonify({
        'stripe_publishable_key': app_ctx.config.stripe_publishable_key,
        'free_limits': FREE_LIMITS.to_dict(),
        'plans': plans,
    })


def create_checkout_session(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Please sign in to continue'}), 401

    uid = decoded_token['uid']
    email = decoded_token.get('email', '')
    allowed_checkout, retry_after = app_ctx.check_rate_limit(
        key=f"checkout:{normalize_key_part(uid, fallback='anon_uid')}",
        limit=app_ctx.config.checkout_rate_limit_max_requests,
        window_seconds=app_ctx.config.checkout_rate_limit_window_seconds,
    )
    if not allowed_checkout:
        return app_ctx.build_rate_limited_response(
            'Too many checkout attempts. Please wait before starting another checkout.',
            retry_after,
        )

    data = request.get_json(silent=True) or {}
    plan_id = str(data.get('plan_id', '') or '').strip().lower()
    catalog = build_plan_catalog(app_ctx.config)
    if plan_id not in catalog:
        return app_ctx.jsonify({'error': 'Invalid plan selected'}), 400
    plan = catalog[plan_id]

    try:
        checkout_session = app_ctx.stripe.checkout.Session.create(
            payment_method_types=['card'],
            line_items=[{
                'price_data': {
                    'currency': plan['currency'],
                    'product_data': {
                        'name': plan['name'],
                        'description': plan['description'],
                    },
                    'unit_amount': plan['price_cents'],
                },
                'quantity': 1,
            }],
            mode='payment',
            success_url=request.host_url.rstrip('/') + '/subscription?payment=success&session_id={CHECKOUT_SESSION_ID}',
            cancel_url=request.host_url.rstrip('/') + '/subscription?payment=cancelled',
            customer_email=email or None,
            metadata={
                'uid': uid,
                'plan_id': plan_id,
            },
        )
        return app_ctx.jsonify({'checkout_url': checkout_session.url})
    except Exception as e:
        app_ctx.logger.error(f"Stripe checkout error: {e}")
        return app_ctx.jsonify({'error': 'Could not create checkout session. Please try again.'}), 500


def process_checkout_session(app_ctx, stripe_session):
    metadata = stripe_session.get('metadata', {}) or {}
    uid = metadata.get('uid', '')
    plan_id = metadata.get('plan_id', '')
    payment_status = (stripe_session.get('payment_status') or '').lower()
    session_status = (stripe_session.get('status') or '').lower()

    if not uid or not plan_id:
        return False, 'Missing checkout metadata.'
    if payment_status != 'paid' and session_status != 'complete':
        return False, 'Checkout session is not paid yet.'

    result = subscription_service.activate_subscription(
        uid,
        plan_id,
        db=app_ctx.db,
        firestore_module=app_ctx.firestore_module,
        now_ts=app_ctx.now(),
        payment_reference=stripe_session.get('id', ''),
        provider='stripe',
        amount=stripe_session.get('amount_total'),
        currency=stripe_session.get('currency', '') or '',
        logger=app_ctx.logger,
    )
    return True, result['status']


def stripe_webhook(app_ctx, request):
    payload = request.data
    sig_header = request.headers.get('Stripe-Signature', '')
    webhook_secret = app_ctx.config.stripe_webhook_secret

    if not webhook_secret:
        app_ctx.logger.warning("Stripe webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        return app_ctx.jsonify({'error': 'Webhook not configured'}), 500
    try:
        event = app_ctx.stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except ValueError:
        app_ctx.logger.warning("Stripe webhook: Invalid payload")
        return 'Invalid payload', 400
    except app_ctx.stripe.SignatureVerificationError as e:
        app_ctx.logger.warning(f"Stripe webhook signature verification failed: {e}")
        return 'Invalid signature', 400

    if event.get('type') == 'checkout.session.completed':
        session = event['data']['object']
        try:
            ok, status = process_checkout_session(app_ctx, session)
        except ServiceError as e:
            app_ctx.logger.error(f"Webhook checkout session {session.get('id', '')} failed: {e.message}")
            return app_ctx.jsonify({'error': e.message}), e.status_code
        if ok and status == 'activated':
            metadata = session.get('metadata', {}) or {}
            app_ctx.logger.info(f"Payment successful, activated '{metadata.get('plan_id', '')}' for user '{metadata.get('uid', '')}'")
        elif ok:
            app_ctx.logger.info(f"Checkout session {session.get('id', '')} already processed.")
        else:
            app_ctx.logger.warning(f"Webhook checkout session {session.get('id', '')} not processed: {status}")

    return '', 200
