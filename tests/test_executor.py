"""Tests for the refresh executor."""

import pytest

from autorefresh.analyzer import analyze
from autorefresh.executor import apply_resolution, refresh, refresh_future
from autorefresh.parsing import SchemaParser
from autorefresh.paths import reference_id
from autorefresh.plan import RefreshPlan
from autorefresh.store import StorageUnavailableError

FAMILY = """
Person {
    name: string,
    father: ref Person @autorefresh,
    relatives: ref Person[] @autorefresh(projection = [name]),
}
"""

PEOPLE = {
    2: {"_id": 2, "name": "Dad"},
    3: {"_id": 3, "name": "Aunt"},
    4: {"_id": 4, "name": "Uncle"},
}


@pytest.fixture
def plan():
    return analyze(SchemaParser().parse(FAMILY).get_document_type("Person"))


class RecordingResolver:
    """Resolver that answers from a fixed table and records its calls."""

    def __init__(self, records=PEOPLE, error=None, defer=False):
        self.records = records
        self.error = error
        self.defer = defer
        self.calls = []
        self.pending = None

    def __call__(self, instance, requests, callback):
        self.calls.append([(r.path, r.collection, dict(r.options)) for r in requests])
        if self.defer:
            self.pending = (instance, requests, callback)
            return
        self.complete(instance, requests, callback)

    def complete(self, instance, requests, callback):
        if self.error is not None:
            callback(self.error, None)
            return
        resolution = {}
        for request in requests:
            value = instance.get(request.path)
            values = value if isinstance(value, list) else [value]
            idents = [reference_id(v) for v in values if v is not None]
            resolution[request.path] = {
                i: self.records[i] for i in idents if i in self.records
            }
        callback(None, resolution)


def _collect():
    results = []
    return results, lambda error, doc: results.append((error, doc))


class TestRefresh:
    """Tests for refresh()."""

    def test_populates_single_and_list(self, plan):
        """Test the father/relatives scenario."""
        doc = {"_id": 1, "name": "Kid", "father": 2, "relatives": [3, None, 4]}
        resolver = RecordingResolver()
        results, callback = _collect()

        refresh(doc, plan, resolver, callback)

        assert results == [(None, doc)]
        assert results[0][1] is doc
        assert doc["father"] == {"_id": 2, "name": "Dad"}
        assert doc["relatives"] == [
            {"_id": 3, "name": "Aunt"},
            None,
            {"_id": 4, "name": "Uncle"},
        ]

    def test_one_resolver_call_with_every_path(self, plan):
        """Test that the resolver is called once with all plan entries."""
        doc = {"father": 2, "relatives": [3]}
        resolver = RecordingResolver()

        refresh(doc, plan, resolver, lambda e, d: None)

        assert resolver.calls == [[
            ("father", "Person", {"max_depth": 1, "projection": None}),
            ("relatives", "Person", {"max_depth": 1, "projection": ("name",)}),
        ]]

    def test_requests_are_copies(self, plan):
        """Test that a resolver mutating requests does not change the plan."""

        def greedy(instance, requests, callback):
            for request in requests:
                request.options["max_depth"] = 99
            callback(None, {})

        refresh({"father": 2}, plan, greedy, lambda e, d: None)

        assert plan["father"].max_depth == 1

    def test_failure_leaves_document_unchanged(self, plan):
        """Test that resolver errors reach the callback and nothing is applied."""
        doc = {"father": 2, "relatives": [3, 4]}
        error = StorageUnavailableError("down")
        results, callback = _collect()

        refresh(doc, plan, RecordingResolver(error=error), callback)

        assert results == [(error, doc)]
        assert doc == {"father": 2, "relatives": [3, 4]}

    def test_synchronous_raise(self, plan):
        """Test that an exception raised by the resolver goes to the callback."""
        doc = {"father": 2}

        def broken(instance, requests, callback):
            raise ValueError("bad request")

        results, callback = _collect()
        refresh(doc, plan, broken, callback)

        assert len(results) == 1
        assert isinstance(results[0][0], ValueError)
        assert doc == {"father": 2}

    def test_callback_waits_for_resolver(self, plan):
        """Test that the callback runs only after the resolver completes."""
        doc = {"father": 2}
        resolver = RecordingResolver(defer=True)
        results, callback = _collect()

        refresh(doc, plan, resolver, callback)
        assert results == []
        assert doc == {"father": 2}

        resolver.complete(*resolver.pending)
        assert results == [(None, doc)]
        assert doc["father"]["name"] == "Dad"

    def test_double_completion(self, plan):
        """Test that completing twice is an error and the callback runs once."""

        def twice(instance, requests, callback):
            callback(None, {})
            callback(None, {})

        results, callback = _collect()
        with pytest.raises(RuntimeError):
            refresh({"father": 2}, plan, twice, callback)
        assert len(results) == 1

    def test_empty_plan(self):
        """Test that an empty plan completes without calling the resolver."""
        resolver = RecordingResolver()
        results, callback = _collect()
        doc = {"father": 2}

        refresh(doc, RefreshPlan(), resolver, callback)

        assert results == [(None, doc)]
        assert resolver.calls == []

    def test_missing_target_keeps_identifier(self, plan):
        """Test that references to absent documents are left as identifiers."""
        doc = {"father": 9, "relatives": [3, 8]}

        refresh(doc, plan, RecordingResolver(), lambda e, d: None)

        assert doc["father"] == 9
        assert doc["relatives"] == [{"_id": 3, "name": "Aunt"}, 8]

    def test_second_refresh_is_stable(self, plan):
        """Test that refreshing an already populated document gives the same values."""
        doc = {"father": 2, "relatives": [3, 4]}
        resolver = RecordingResolver()

        refresh(doc, plan, resolver, lambda e, d: None)
        first = {"father": dict(doc["father"]), "relatives": [dict(r) for r in doc["relatives"]]}
        refresh(doc, plan, resolver, lambda e, d: None)

        assert doc == first


class TestRefreshFuture:
    """Tests for refresh_future()."""

    def test_result(self, plan):
        doc = {"father": 2}
        future = refresh_future(doc, plan, RecordingResolver())
        assert future.result(timeout=1) is doc
        assert doc["father"]["_id"] == 2

    def test_exception(self, plan):
        error = StorageUnavailableError("down")
        future = refresh_future({"father": 2}, plan, RecordingResolver(error=error))
        assert future.exception(timeout=1) is error

    def test_pending_until_resolved(self, plan):
        resolver = RecordingResolver(defer=True)
        future = refresh_future({"father": 2}, plan, resolver)
        assert not future.done()
        resolver.complete(*resolver.pending)
        assert future.done()


class TestApplyResolution:
    """Tests for apply_resolution()."""

    def test_each_slot_gets_its_own_copy(self, plan):
        """Test that repeated identifiers do not share one mapping."""
        doc = {"relatives": [3, 3]}
        apply_resolution(doc, plan.requests(), {"relatives": {3: {"_id": 3, "name": "Aunt"}}})

        doc["relatives"][0]["name"] = "changed"
        assert doc["relatives"][1]["name"] == "Aunt"

    def test_unresolved_paths_skipped(self, plan):
        doc = {"father": 2, "relatives": [3]}
        apply_resolution(doc, plan.requests(), {"father": {}})
        assert doc == {"father": 2, "relatives": [3]}
