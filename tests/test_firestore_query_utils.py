from exavy.repositories.query_utils import apply_filters, apply_where


class _FilterCapableQuery:
    def __init__(self):
        self.calls = []

    def where(self, *args, **kwargs):
        self.calls.append(kwargs)
        return self


class _PositionalOnlyQuery:
    def __init__(self):
        self.calls = []

    def where(self, *args, **kwargs):
        if "filter" in kwargs:
            raise TypeError("filter keyword unsupported")
        self.calls.append(args)
        return self


def test_apply_where_prefers_field_filter_keyword():
    query = _FilterCapableQuery()

    result = apply_where(query, "status", "==", "active")

    assert result is query
    assert "filter" in query.calls[0]


def test_apply_where_falls_back_to_positional_for_simple_test_doubles():
    query = _PositionalOnlyQuery()

    result = apply_where(query, "expires_at", "<", 100.0)

    assert result is query
    assert query.calls == [("expires_at", "<", 100.0)]


def test_apply_filters_chains_every_filter():
    query = _PositionalOnlyQuery()

    apply_filters(query, ("status", "==", "active"), ("expires_at", "<", 5))

    assert query.calls == [("status", "==", "active"), ("expires_at", "<", 5)]
