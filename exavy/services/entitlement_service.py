"""Plan resolution and usage-limit enforcement.

Callers check before a metered action and record after it succeeds:

    result = check_limit(uid, 'quizzes', ...)
    if result['allowed']:
        generate_quiz(...)
        record_usage(uid, 'quizzes', ...)

``try_consume`` fuses both steps in one transaction for callers that cannot
tolerate overshooting the quota under concurrent requests.
"""

import logging

from exavy.errors import QuotaExceeded, TransientStoreError
from exavy.logging_config import log_event
from exavy.plans import (
    UNLIMITED,
    PlanTier,
    ResourceKind,
    SubscriptionStatus,
    get_plan_limits,
    is_premium,
    parse_resource_kind,
)
from exavy.repositories import subscriptions_repo, usage_repo
from exavy.services import subscription_service
from exavy.timeutils import coerce_timestamp, month_start_ts, to_iso


def plan_from_subscription(data, now_ts):
    """Resolve the effective tier of a non-admin from its subscription row."""
    if not data:
        return PlanTier.FREE
    status = str(data.get('status') or '').strip().lower()
    if status != SubscriptionStatus.ACTIVE.value:
        return PlanTier.FREE
    expires_at = coerce_timestamp(data.get('expires_at'))
    if expires_at is not None and expires_at < now_ts:
        return PlanTier.FREE
    plan = str(data.get('plan') or '').strip().lower()
    if plan in (PlanTier.MONTHLY.value, PlanTier.YEARLY.value):
        return PlanTier(plan)
    return PlanTier.FREE


def _snapshot_data(snapshot):
    if snapshot is None or not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


def resolve_plan(uid, *, is_admin, db, now_ts):
    if is_admin:
        return PlanTier.ADMIN
    try:
        data = _snapshot_data(subscriptions_repo.get_doc(db, uid))
    except Exception as exc:
        raise TransientStoreError() from exc
    return plan_from_subscription(data, now_ts)


def empty_counters():
    return {resource: 0 for resource in ResourceKind}


def counters_for_period(data, period_start):
    """Counters of a stored usage row, or zeros when the row belongs to an earlier period."""
    if not data or is_stale_period(data, period_start):
        return empty_counters()
    counters = {}
    for resource in ResourceKind:
        try:
            counters[resource] = max(0, int(data.get(resource.counter_field, 0) or 0))
        except (TypeError, ValueError):
            counters[resource] = 0
    return counters


def is_stale_period(data, period_start):
    stored = coerce_timestamp(data.get('period_start'))
    return stored is None or stored < period_start


def build_usage_row(uid, period_start, now_ts):
    row = {
        'uid': uid,
        'period_start': period_start,
        'created_at': now_ts,
        'updated_at': now_ts,
    }
    for resource in ResourceKind:
        row[resource.counter_field] = 0
    return row


def read_usage(uid, *, db, now_ts):
    try:
        data = _snapshot_data(usage_repo.get_doc(db, uid))
    except Exception as exc:
        raise TransientStoreError() from exc
    return counters_for_period(data, month_start_ts(now_ts))


def limit_message(resource, current, limit):
    return (
        f"You have used {current}/{limit} {resource.label} this month. "
        "Upgrade to Premium for unlimited access."
    )


def evaluate_limit(plan, resource, current, limit):
    allowed = limit == UNLIMITED or current < limit
    result = {
        'allowed': allowed,
        'current': current,
        'limit': limit,
        'plan': PlanTier(plan).value,
    }
    if not allowed:
        result['message'] = limit_message(resource, current, limit)
    return result


def admin_result():
    return {'allowed': True, 'current': 0, 'limit': UNLIMITED, 'plan': PlanTier.ADMIN.value}


def fail_open_result(uid, resource, error, *, plan=None, logger=None):
    """Result used when a store read fails: the action is allowed and the event logged.

    ``plan`` is the tier resolved before the failure, if any; otherwise free.
    """
    plan = PlanTier(plan or PlanTier.FREE)
    log_event(
        logging.WARNING,
        'entitlement_fail_open',
        logger=logger,
        uid=uid,
        resource=resource.value,
        error=str(error.__cause__ or error),
    )
    return {
        'allowed': True,
        'current': 0,
        'limit': UNLIMITED,
        'plan': plan.value,
        'fail_open': True,
    }


def check_limit(uid, resource, *, is_admin, db, now_ts, logger=None):
    resource = parse_resource_kind(resource)
    if is_admin:
        return admin_result()
    plan = None
    try:
        plan = resolve_plan(uid, is_admin=False, db=db, now_ts=now_ts)
        counters = read_usage(uid, db=db, now_ts=now_ts)
    except TransientStoreError as exc:
        return fail_open_result(uid, resource, exc, plan=plan, logger=logger)
    limit = get_plan_limits(plan).limit_for(resource)
    result = evaluate_limit(plan, resource, counters[resource], limit)
    if not result['allowed']:
        log_event(logging.INFO, 'quota_denied', logger=logger, uid=uid, resource=resource.value,
                  current=result['current'], limit=limit, plan=result['plan'])
    return result


def record_usage(uid, resource, *, db, firestore_module, now_ts):
    """Count one unit of ``resource``; rolls the row over when a new month has begun."""
    resource = parse_resource_kind(resource)
    period_start = month_start_ts(now_ts)
    usage_ref = usage_repo.doc_ref(db, uid)

    @firestore_module.transactional
    def _record_in_transaction(transaction):
        data = _snapshot_data(usage_ref.get(transaction=transaction))
        if not data or is_stale_period(data, period_start):
            row = build_usage_row(uid, period_start, now_ts)
            row[resource.counter_field] = 1
            transaction.set(usage_ref, row)
            return 1
        transaction.update(usage_ref, {
            resource.counter_field: firestore_module.Increment(1),
            'updated_at': now_ts,
        })
        return counters_for_period(data, period_start)[resource] + 1

    try:
        return _record_in_transaction(db.transaction())
    except Exception as exc:
        raise TransientStoreError() from exc


def try_consume(uid, resource, *, is_admin, db, firestore_module, now_ts, logger=None):
    """Check and count one unit atomically. Raises ``QuotaExceeded`` when denied."""
    resource = parse_resource_kind(resource)
    if is_admin:
        return admin_result()
    period_start = month_start_ts(now_ts)
    subscription_ref = subscriptions_repo.doc_ref(db, uid)
    usage_ref = usage_repo.doc_ref(db, uid)

    @firestore_module.transactional
    def _consume_in_transaction(transaction):
        subscription = _snapshot_data(subscription_ref.get(transaction=transaction))
        usage = _snapshot_data(usage_ref.get(transaction=transaction))
        plan = plan_from_subscription(subscription, now_ts)
        limit = get_plan_limits(plan).limit_for(resource)
        current = counters_for_period(usage, period_start)[resource]
        result = evaluate_limit(plan, resource, current, limit)
        if not result['allowed']:
            return result
        if not usage or is_stale_period(usage, period_start):
            row = build_usage_row(uid, period_start, now_ts)
            row[resource.counter_field] = 1
            transaction.set(usage_ref, row)
        else:
            transaction.update(usage_ref, {
                resource.counter_field: firestore_module.Increment(1),
                'updated_at': now_ts,
            })
        result['current'] = current + 1
        return result

    try:
        result = _consume_in_transaction(db.transaction())
    except Exception as exc:
        raise TransientStoreError() from exc
    if not result['allowed']:
        log_event(logging.INFO, 'quota_denied', logger=logger, uid=uid, resource=resource.value,
                  current=result['current'], limit=result['limit'], plan=result['plan'])
        raise QuotaExceeded(result['message'], resource.value, result['current'], result['limit'], result['plan'])
    return result


def usage_percentage(current, limit, *, is_admin=False):
    if is_admin or limit == UNLIMITED:
        return 0
    if limit <= 0:
        return 100
    return min((current / limit) * 100, 100)


def build_usage_summary(uid, *, is_admin, db, now_ts):
    period_start = month_start_ts(now_ts)
    if is_admin:
        plan = PlanTier.ADMIN
        subscription = None
        counters = empty_counters()
    else:
        try:
            subscription = _snapshot_data(subscriptions_repo.get_doc(db, uid))
            usage = _snapshot_data(usage_repo.get_doc(db, uid))
        except Exception as exc:
            raise TransientStoreError() from exc
        plan = plan_from_subscription(subscription, now_ts)
        counters = counters_for_period(usage, period_start)

    limits = get_plan_limits(plan)
    usage_payload = {}
    for resource in ResourceKind:
        limit = limits.limit_for(resource)
        current = counters[resource]
        usage_payload[resource.value] = {
            'current': current,
            'limit': limit,
            'percentage': usage_percentage(current, limit, is_admin=is_admin),
        }
    return {
        'plan': plan.value,
        'is_premium': is_premium(plan),
        'is_admin': bool(is_admin),
        'features': limits.features(),
        'period_start': to_iso(period_start),
        'subscription': subscription_service.serialize_subscription(subscription),
        'usage': usage_payload,
    }
