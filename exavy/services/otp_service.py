"""Email one-time codes: issue, rate limit, verify.

Each email owns a single ``otp_codes`` document keyed by a hash of the
address, so issuing a new code replaces (supersedes) the previous one in the
same write, and verification reads and deletes it in one transaction.
Issuance timestamps live in a separate log document that survives
verification, which keeps the resend limit effective after a code is used.
"""

import hashlib
import hmac
import logging
import re
import secrets

from exavy.errors import NotFoundOrExpired, RateLimited, TransientStoreError, ValidationError
from exavy.logging_config import log_event
from exavy.repositories import otp_repo
from exavy.services.mail_service import build_otp_email
from exavy.timeutils import coerce_timestamp

OTP_CODE_LENGTH = 6
OTP_TTL_SECONDS = 10 * 60
OTP_ISSUE_WINDOW_SECONDS = 5 * 60
OTP_ISSUE_MAX_PER_WINDOW = 3
EMAIL_MAX_LENGTH = 254
SWEEP_BATCH_LIMIT = 200

CODE_RE = re.compile(r'[0-9]{6}')
GENERIC_VERIFY_ERROR = 'Invalid or expired code'


def normalize_email(raw_email):
    if not isinstance(raw_email, str):
        return ''
    return raw_email.strip().lower()


def validate_email(email):
    if not email:
        raise ValidationError('Email is required')
    if len(email) > EMAIL_MAX_LENGTH or email.count('@') != 1:
        raise ValidationError('Invalid email format')
    local, domain = email.split('@')
    if not local or not domain or any(ch.isspace() for ch in email):
        raise ValidationError('Invalid email format')
    if '.' not in domain or domain.startswith('.') or domain.endswith('.'):
        raise ValidationError('Invalid email format')
    return email


def validate_code(code):
    if not isinstance(code, str) or not CODE_RE.fullmatch(code):
        raise ValidationError('Code must be 6 digits')
    return code


def email_key(email):
    return hashlib.sha256(email.encode('utf-8')).hexdigest()


def hash_code(key, code, pepper):
    material = f"{key}:{code}:{pepper or ''}".encode('utf-8')
    return hashlib.sha256(material).hexdigest()


def generate_code():
    # randbelow is uniform over the whole range, so no modulo bias.
    return str(secrets.randbelow(10 ** OTP_CODE_LENGTH)).zfill(OTP_CODE_LENGTH)


def recent_issue_timestamps(log_data, now_ts):
    cutoff = now_ts - OTP_ISSUE_WINDOW_SECONDS
    kept = []
    for raw in (log_data or {}).get('issued_at', []) or []:
        ts = coerce_timestamp(raw)
        if ts is not None and ts > cutoff:
            kept.append(ts)
    return sorted(kept)


def issue_code(email, *, db, firestore_module, mailer, now_ts, pepper, app_name='EXAVY', logger=None):
    email = validate_email(normalize_email(email))
    key = email_key(email)
    code = generate_code()
    expires_at = now_ts + OTP_TTL_SECONDS
    code_ref = otp_repo.code_doc_ref(db, key)
    log_ref = otp_repo.issue_log_doc_ref(db, key)

    @firestore_module.transactional
    def _issue_in_transaction(transaction):
        log_snapshot = log_ref.get(transaction=transaction)
        history = recent_issue_timestamps(log_snapshot.to_dict() if log_snapshot.exists else None, now_ts)
        if len(history) >= OTP_ISSUE_MAX_PER_WINDOW:
            return False, max(1, int(history[0] + OTP_ISSUE_WINDOW_SECONDS - now_ts))
        transaction.set(code_ref, {
            'email': email,
            'code_hash': hash_code(key, code, pepper),
            'expires_at': expires_at,
            'verified': False,
            'created_at': now_ts,
        })
        transaction.set(log_ref, {
            'email': email,
            'issued_at': history + [now_ts],
            'updated_at': now_ts,
        })
        return True, 0

    try:
        issued, retry_after = _issue_in_transaction(db.transaction())
    except Exception as exc:
        raise TransientStoreError('Could not create a verification code. Please try again.') from exc
    if not issued:
        log_event(logging.INFO, 'otp_rate_limited', logger=logger, email_key=key[:16], retry_after=retry_after)
        raise RateLimited('Too many code requests. Please try again in a few minutes.', retry_after)

    subject, body = build_otp_email(code, OTP_TTL_SECONDS // 60, app_name)
    delivered = mailer.send(email, subject, body)
    if not delivered:
        # The code stays valid; the user can request a new one.
        log_event(logging.WARNING, 'otp_delivery_failed', logger=logger, email_key=key[:16])
    log_event(logging.INFO, 'otp_issued', logger=logger, email_key=key[:16], delivered=delivered)
    return {
        'success': True,
        'message': 'Verification code sent by email',
        'expires_in_seconds': OTP_TTL_SECONDS,
    }


def sweep_expired_codes(db, *, now_ts, logger=None, limit=SWEEP_BATCH_LIMIT):
    """Best-effort housekeeping; verification never depends on it."""
    try:
        docs = otp_repo.list_expired_codes(db, now_ts, limit)
        if not docs:
            return 0
        batch = db.batch()
        for doc in docs:
            batch.delete(doc.reference)
        batch.commit()
        return len(docs)
    except Exception as exc:
        if logger is not None:
            logger.warning(f"Expired OTP sweep failed: {exc}")
        return 0


def verify_code(email, code, *, db, firestore_module, now_ts, pepper, logger=None):
    validate_code(code)
    email = validate_email(normalize_email(email))
    key = email_key(email)
    expected_hash = hash_code(key, code, pepper)
    code_ref = otp_repo.code_doc_ref(db, key)

    sweep_expired_codes(db, now_ts=now_ts, logger=logger)

    @firestore_module.transactional
    def _consume_in_transaction(transaction):
        snapshot = code_ref.get(transaction=transaction)
        if not snapshot.exists:
            return 'missing'
        data = snapshot.to_dict() or {}
        if data.get('verified') or data.get('email') != email:
            return 'missing'
        if not hmac.compare_digest(str(data.get('code_hash', '')), expected_hash):
            return 'missing'
        transaction.delete(code_ref)
        expires_at = coerce_timestamp(data.get('expires_at'))
        if expires_at is None or expires_at < now_ts:
            return 'expired'
        return 'valid'

    try:
        outcome = _consume_in_transaction(db.transaction())
    except Exception as exc:
        raise TransientStoreError() from exc
    if outcome != 'valid':
        log_event(logging.INFO, 'otp_verify_failed', logger=logger, email_key=key[:16], reason=outcome)
        raise NotFoundOrExpired(GENERIC_VERIFY_ERROR)
    log_event(logging.INFO, 'otp_verified', logger=logger, email_key=key[:16])
    return {'valid': True}
