import copy
import functools
import threading
from datetime import datetime, timezone

import pytest

from exavy import create_app
from exavy.app_context import AppContext
from exavy.config import AppConfig


class FakeIncrement:
    def __init__(self, value):
        self.value = value


class FakeFirestoreModule:
    """Stands in for ``firebase_admin.firestore`` in service calls."""

    Increment = FakeIncrement

    @staticmethod
    def transactional(func):
        @functools.wraps(func)
        def wrapper(transaction, *args, **kwargs):
            with transaction.db.lock:
                result = func(transaction, *args, **kwargs)
                transaction.commit()
                return result

        return wrapper


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


def _apply_fields(existing, fields):
    merged = dict(existing)
    for key, value in fields.items():
        if isinstance(value, FakeIncrement):
            merged[key] = (merged.get(key) or 0) + value.value
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class FakeDocumentReference:
    def __init__(self, db, collection_name, doc_id):
        self.db = db
        self.collection_name = collection_name
        self.id = doc_id

    @property
    def key(self):
        return (self.collection_name, self.id)

    def get(self, transaction=None):
        if self.db.unavailable:
            raise ConnectionError('firestore unavailable')
        self.db.reads += 1
        with self.db.lock:
            return FakeSnapshot(self, copy.deepcopy(self.db.docs.get(self.key)))

    def set(self, data, merge=False):
        with self.db.lock:
            existing = self.db.docs.get(self.key) if merge else None
            self.db.docs[self.key] = _apply_fields(existing or {}, data)
            self.db.writes += 1

    def update(self, data):
        with self.db.lock:
            if self.key not in self.db.docs:
                raise KeyError(f"No document to update: {self.collection_name}/{self.id}")
            self.db.docs[self.key] = _apply_fields(self.db.docs[self.key], data)
            self.db.writes += 1

    def delete(self):
        with self.db.lock:
            self.db.docs.pop(self.key, None)
            self.db.writes += 1


_OPS = {
    '==': lambda left, right: left == right,
    '<': lambda left, right: left < right,
    '<=': lambda left, right: left <= right,
    '>': lambda left, right: left > right,
    '>=': lambda left, right: left >= right,
}


class FakeQuery:
    def __init__(self, db, collection_name, filters=(), limit_count=None):
        self.db = db
        self.collection_name = collection_name
        self.filters = tuple(filters)
        self.limit_count = limit_count

    def where(self, *args, **kwargs):
        if 'filter' in kwargs:
            raise TypeError('filter keyword unsupported')
        return FakeQuery(self.db, self.collection_name, self.filters + (tuple(args),), self.limit_count)

    def limit(self, count):
        return FakeQuery(self.db, self.collection_name, self.filters, count)

    def stream(self):
        if self.db.unavailable:
            raise ConnectionError('firestore unavailable')
        with self.db.lock:
            items = [
                (doc_id, copy.deepcopy(data))
                for (collection_name, doc_id), data in self.db.docs.items()
                if collection_name == self.collection_name
            ]
        results = []
        for doc_id, data in items:
            matched = True
            for field_path, op_string, value in self.filters:
                if field_path not in data or not _OPS[op_string](data[field_path], value):
                    matched = False
                    break
            if matched:
                ref = FakeDocumentReference(self.db, self.collection_name, doc_id)
                results.append(FakeSnapshot(ref, data))
        if self.limit_count is not None:
            results = results[:self.limit_count]
        return iter(results)


class FakeCollection(FakeQuery):
    def document(self, doc_id):
        return FakeDocumentReference(self.db, self.collection_name, doc_id)


class FakeTransaction:
    def __init__(self, db):
        self.db = db
        self._ops = []

    def set(self, ref, data, merge=False):
        self._ops.append(lambda: ref.set(data, merge=merge))

    def update(self, ref, data):
        self._ops.append(lambda: ref.update(data))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        ops, self._ops = self._ops, []
        for op in ops:
            op()


class FakeBatch(FakeTransaction):
    pass


class FakeFirestore:
    """In-memory Firestore client. Transactions serialize on one re-entrant lock."""

    def __init__(self):
        self.docs = {}
        self.lock = threading.RLock()
        self.reads = 0
        self.writes = 0
        self.unavailable = False

    def collection(self, name):
        return FakeCollection(self, name)

    def transaction(self):
        return FakeTransaction(self)

    def batch(self):
        return FakeBatch(self)

    def get(self, collection_name, doc_id):
        return copy.deepcopy(self.docs.get((collection_name, doc_id)))

    def put(self, collection_name, doc_id, data):
        self.docs[(collection_name, doc_id)] = copy.deepcopy(data)

    def collection_docs(self, collection_name):
        return {doc_id: data for (name, doc_id), data in self.docs.items() if name == collection_name}


class BrokenFirestore(FakeFirestore):
    """Every read, query and commit fails, like an unreachable backend."""

    def __init__(self):
        super().__init__()
        self.unavailable = True

    def transaction(self):
        raise ConnectionError('firestore unavailable')

    def batch(self):
        raise ConnectionError('firestore unavailable')


class FakeClock:
    def __init__(self, now):
        self.now = float(now)

    def time(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeMailer:
    def __init__(self, deliver=True):
        self.deliver = deliver
        self.sent = []

    def send(self, to_address, subject, body_html):
        self.sent.append({'to': to_address, 'subject': subject, 'html': body_html})
        return self.deliver


class FakeAuth:
    def __init__(self, tokens=None):
        self.tokens = dict(tokens or {})

    def verify_id_token(self, token):
        if token not in self.tokens:
            raise ValueError('invalid token')
        return dict(self.tokens[token])


NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc).timestamp()

TOKENS = {
    'user-token': {'uid': 'user-1', 'email': 'student@example.com'},
    'other-token': {'uid': 'user-2', 'email': 'other@example.com'},
    'admin-token': {'uid': 'admin-1', 'email': 'admin@example.com'},
}


@pytest.fixture()
def db():
    return FakeFirestore()


@pytest.fixture()
def fs_module():
    return FakeFirestoreModule()


@pytest.fixture()
def clock():
    return FakeClock(NOW)


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def app_config():
    return AppConfig(
        flask_secret_key='test-secret',
        log_level='INFO',
        app_name='EXAVY',
        sentry_dsn='',
        admin_uids=frozenset({'admin-1'}),
        admin_emails=frozenset(),
        resend_api_key='',
        otp_pepper='test-pepper',
        otp_send_rate_limit_max_requests=10,
        otp_send_rate_limit_window_seconds=600,
        otp_verify_rate_limit_max_requests=10,
        otp_verify_rate_limit_window_seconds=600,
        rate_limit_firestore_enabled=False,
        trusted_proxy_count=0,
        stripe_secret_key='',
        stripe_publishable_key='pk_test_contract',
        stripe_webhook_secret='whsec_test',
        checkout_rate_limit_max_requests=6,
        checkout_rate_limit_window_seconds=600,
        plan_monthly_price_cents=600,
        plan_yearly_price_cents=6000,
        plan_currency='usd',
    )


@pytest.fixture()
def app_ctx(app_config, db, fs_module, mailer, clock):
    return AppContext(
        app_config,
        db=db,
        firestore_module=fs_module,
        auth_module=FakeAuth(TOKENS),
        mailer=mailer,
        stripe_module=None,
        sentry_sdk=None,
        time_module=clock,
    )


@pytest.fixture()
def app(app_config, app_ctx):
    flask_app = create_app(config=app_config, app_ctx=app_ctx)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as test_client:
        yield test_client


def auth_headers(token='user-token'):
    return {'Authorization': f'Bearer {token}'}
