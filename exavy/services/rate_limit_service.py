"""Request throttling with Firestore-first, in-process fallback strategy."""

import hashlib
import re
import threading

from exavy.repositories import rate_limit_repo


def window_counter_id(key, window_seconds, window_start):
    raw = f"{key}|{window_seconds}|{int(window_start)}".encode('utf-8')
    return hashlib.sha256(raw).hexdigest()


def normalize_key_part(value, fallback='anon', max_len=120):
    raw = str(value or '').strip().lower()
    if not raw:
        return fallback
    safe = re.sub(r'[^a-z0-9_.:@-]+', '_', raw)
    return safe[:max_len] if safe else fallback


class InMemoryRateLimiter:
    """Sliding-window limiter used when Firestore counters are unavailable.

    One instance is built per app; it is only consistent within one process.
    """

    def __init__(self):
        self._events = {}
        self._lock = threading.Lock()

    def hit(self, key, limit, window_seconds, now_ts):
        with self._lock:
            cutoff = now_ts - window_seconds
            kept = [ts for ts in self._events.get(key, []) if ts >= cutoff]
            if len(kept) >= limit:
                retry_after = max(1, int((kept[0] + window_seconds) - now_ts))
                self._events[key] = kept
                return False, retry_after
            kept.append(now_ts)
            self._events[key] = kept
        return True, 0

    def clear(self):
        with self._lock:
            self._events.clear()


def check_rate_limit_firestore(key, limit, window_seconds, now_ts, *, db, firestore_module, logger=None):
    """Fixed-window counter in Firestore. Returns None when the store cannot answer."""
    if db is None:
        return None
    try:
        window_start = int(now_ts // window_seconds) * int(window_seconds)
        retry_after = max(1, int((window_start + window_seconds) - now_ts))
        counter_ref = rate_limit_repo.counter_doc_ref(db, window_counter_id(key, window_seconds, window_start))

        @firestore_module.transactional
        def _txn(txn):
            snapshot = counter_ref.get(transaction=txn)
            count = 0
            if snapshot.exists:
                count = int((snapshot.to_dict() or {}).get('count', 0) or 0)
            if count >= limit:
                return False, retry_after
            txn.set(counter_ref, {
                'key': key,
                'count': count + 1,
                'window_start': window_start,
                'window_seconds': int(window_seconds),
                'updated_at': now_ts,
                'expires_at': window_start + (window_seconds * 3),
            }, merge=True)
            return True, 0

        return _txn(db.transaction())
    except Exception as exc:
        if logger is not None:
            logger.warning(f"Rate limit counter unavailable, using in-process fallback: {exc}")
        return None


def check_rate_limit(key, limit, window_seconds, now_ts, *, firestore_enabled, db, firestore_module, fallback, logger=None):
    """Return ``(allowed, retry_after_seconds)`` for one request against ``key``."""
    if firestore_enabled:
        result = check_rate_limit_firestore(
            key,
            limit,
            window_seconds,
            now_ts,
            db=db,
            firestore_module=firestore_module,
            logger=logger,
        )
        if result is not None:
            return result
    return fallback.hit(key, limit, window_seconds, now_ts)
