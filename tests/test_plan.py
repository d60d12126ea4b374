"""Tests for refresh plan values."""

import pytest

from autorefresh.plan import RefreshDirective, RefreshPlan


def _directive(path, collection="Person", **options):
    return RefreshDirective(path=path, collection=collection, options={"max_depth": 1, **options})


class TestRefreshDirective:
    """Tests for RefreshDirective."""

    def test_options_read_only(self):
        """Test that directive options cannot be changed."""
        directive = _directive("father")
        with pytest.raises(TypeError):
            directive.options["max_depth"] = 5

    def test_to_request_is_a_copy(self):
        """Test that requests do not share state with their directive."""
        directive = _directive("father", projection=("name",))
        request = directive.to_request()
        request.options["max_depth"] = 9

        assert directive.max_depth == 1
        assert request.max_depth == 9
        assert request.projection == ("name",)
        assert request.path == "father"
        assert request.collection == "Person"


class TestRefreshPlan:
    """Tests for RefreshPlan."""

    def test_ordered_mapping(self):
        """Test insertion order and mapping behaviour."""
        plan = RefreshPlan([("b", _directive("b")), ("a", _directive("a", "Pet"))])

        assert list(plan) == ["b", "a"]
        assert len(plan) == 2
        assert plan["a"].collection == "Pet"
        assert plan.collections == ["Person", "Pet"]

    def test_last_write_wins(self):
        """Test that a repeated path keeps the last directive."""
        plan = RefreshPlan([
            ("a", _directive("a", max_depth=1)),
            ("a", _directive("a", max_depth=4)),
        ])

        assert len(plan) == 1
        assert plan["a"].max_depth == 4

    def test_requests_follow_plan_order(self):
        """Test that every run gets fresh request copies."""
        plan = RefreshPlan([("b", _directive("b")), ("a", _directive("a"))])

        first = plan.requests()
        first[0].options["max_depth"] = 0
        second = plan.requests()

        assert [r.path for r in second] == ["b", "a"]
        assert second[0].max_depth == 1
        assert plan["b"].max_depth == 1

    def test_read_only(self):
        """Test that plans have no item assignment."""
        plan = RefreshPlan()
        with pytest.raises(TypeError):
            plan["x"] = _directive("x")
