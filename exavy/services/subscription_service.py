"""Subscription lifecycle: trials, paid activations and the expiry sweep."""

import logging

from exavy.errors import TransientStoreError
from exavy.logging_config import log_event
from exavy.plans import PlanTier, SubscriptionStatus, parse_paid_plan
from exavy.repositories import subscriptions_repo
from exavy.timeutils import add_months_ts, coerce_timestamp, to_iso

TRIAL_DURATION_SECONDS = 3 * 24 * 60 * 60
PLAN_DURATION_MONTHS = {
    PlanTier.MONTHLY: 1,
    PlanTier.YEARLY: 12,
}


def serialize_subscription(data):
    if not data:
        return None
    return {
        'plan': str(data.get('plan') or PlanTier.FREE.value),
        'status': str(data.get('status') or SubscriptionStatus.PENDING.value),
        'started_at': to_iso(coerce_timestamp(data.get('started_at'))),
        'expires_at': to_iso(coerce_timestamp(data.get('expires_at'))),
        'is_trial': bool(data.get('is_trial', False)),
    }


def plan_expiry(plan, started_at):
    return add_months_ts(started_at, PLAN_DURATION_MONTHS[PlanTier(plan)])


def create_trial_subscription(uid, *, db, firestore_module, now_ts, logger=None):
    """Start a 3-day monthly trial unless the user already has a subscription row."""
    subscription_ref = subscriptions_repo.doc_ref(db, uid)
    expires_at = now_ts + TRIAL_DURATION_SECONDS

    @firestore_module.transactional
    def _create_in_transaction(transaction):
        snapshot = subscription_ref.get(transaction=transaction)
        if snapshot.exists:
            return False, snapshot.to_dict() or {}
        record = {
            'uid': uid,
            'plan': PlanTier.MONTHLY.value,
            'status': SubscriptionStatus.ACTIVE.value,
            'is_trial': True,
            'started_at': now_ts,
            'expires_at': expires_at,
            'created_at': now_ts,
            'updated_at': now_ts,
        }
        transaction.set(subscription_ref, record)
        return True, record

    try:
        created, record = _create_in_transaction(db.transaction())
    except Exception as exc:
        raise TransientStoreError() from exc
    if created:
        log_event(logging.INFO, 'trial_created', logger=logger, uid=uid, expires_at=to_iso(expires_at))
    return {'created': created, 'subscription': serialize_subscription(record)}


def activate_subscription(
    uid,
    plan,
    *,
    db,
    firestore_module,
    now_ts,
    payment_reference='',
    provider='stripe',
    amount=None,
    currency='',
    logger=None,
):
    """Upsert an active paid subscription after a confirmed payment.

    Replaying the same ``payment_reference`` leaves the row untouched.
    """
    plan = parse_paid_plan(plan)
    subscription_ref = subscriptions_repo.doc_ref(db, uid)
    expires_at = plan_expiry(plan, now_ts)

    @firestore_module.transactional
    def _activate_in_transaction(transaction):
        snapshot = subscription_ref.get(transaction=transaction)
        existing = (snapshot.to_dict() or {}) if snapshot.exists else {}
        if payment_reference and existing.get('payment_reference') == payment_reference:
            return 'already_processed', existing
        record = {
            'uid': uid,
            'plan': plan.value,
            'status': SubscriptionStatus.ACTIVE.value,
            'is_trial': False,
            'started_at': now_ts,
            'expires_at': expires_at,
            'payment_reference': payment_reference,
            'payment_provider': provider,
            'amount': amount,
            'currency': currency,
            'updated_at': now_ts,
        }
        if not existing:
            record['created_at'] = now_ts
        transaction.set(subscription_ref, record, merge=True)
        merged = dict(existing)
        merged.update(record)
        return 'activated', merged

    try:
        status, record = _activate_in_transaction(db.transaction())
    except Exception as exc:
        raise TransientStoreError() from exc
    if status == 'activated':
        log_event(
            logging.INFO,
            'subscription_activated',
            logger=logger,
            uid=uid,
            plan=plan.value,
            provider=provider,
            payment_reference=payment_reference,
            expires_at=to_iso(expires_at),
        )
    return {'status': status, 'subscription': serialize_subscription(record)}


def expire_lapsed_subscriptions(db, *, now_ts, apply_changes, limit=500):
    """Mark active rows past ``expires_at`` as expired. Returns (matched, updated)."""
    docs = subscriptions_repo.list_active_expired_before(db, now_ts, limit)
    updated = 0
    for doc in docs:
        if not apply_changes:
            continue
        doc.reference.update({
            'status': SubscriptionStatus.EXPIRED.value,
            'updated_at': now_ts,
        })
        updated += 1
    return len(docs), updated
