"""Firestore accessors for per-user usage counters."""

COLLECTION = 'usage_tracking'


def doc_ref(db, uid):
    return db.collection(COLLECTION).document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()
