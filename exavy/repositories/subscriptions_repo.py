"""Firestore accessors for the subscriptions collection (one document per uid)."""

from .query_utils import apply_filters

COLLECTION = 'subscriptions'


def doc_ref(db, uid):
    return db.collection(COLLECTION).document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()


def list_active_expired_before(db, cutoff_ts, limit):
    query = apply_filters(
        db.collection(COLLECTION),
        ('status', '==', 'active'),
        ('expires_at', '<', cutoff_ts),
    )
    if isinstance(limit, int) and limit > 0:
        query = query.limit(limit)
    return list(query.stream())
