"""Firestore accessors for one-time codes and their issuance log."""

from .query_utils import apply_where

CODES_COLLECTION = 'otp_codes'
ISSUE_LOG_COLLECTION = 'otp_issue_log'


def code_doc_ref(db, email_key):
    return db.collection(CODES_COLLECTION).document(email_key)


def issue_log_doc_ref(db, email_key):
    return db.collection(ISSUE_LOG_COLLECTION).document(email_key)


def list_expired_codes(db, now_ts, limit):
    query = apply_where(db.collection(CODES_COLLECTION), 'expires_at', '<', now_ts)
    if isinstance(limit, int) and limit > 0:
        query = query.limit(limit)
    return list(query.stream())
