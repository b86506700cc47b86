"""Tests for IdentityTracker: one instance per (type, key) within a call."""

from __future__ import annotations

import uuid

import pytest
from shop_models import Customer, Order, Tag

from relcascade.cascade.identity import IdentityTracker
from relcascade.domain.keys import identity_key, is_unset_key, normalize_key


class TestKeys:
    @pytest.mark.parametrize("value", [None, 0, "", uuid.UUID(int=0)])
    def test_unset_keys(self, value: object) -> None:
        assert is_unset_key(value)

    @pytest.mark.parametrize("value", [1, -3, "a", uuid.uuid4()])
    def test_set_keys(self, value: object) -> None:
        assert not is_unset_key(value)

    def test_bytes_become_uuid(self) -> None:
        value = uuid.uuid4()
        assert normalize_key(value.bytes) == value

    def test_bool_rejected(self) -> None:
        with pytest.raises(TypeError, match="Boolean"):
            normalize_key(True)

    def test_unsupported_type_rejected(self) -> None:
        with pytest.raises(TypeError, match="Unsupported"):
            normalize_key(1.5)

    def test_int_and_str_keys_differ(self) -> None:
        assert identity_key(Customer, 1) != identity_key(Customer, "1")


class TestGetOrCreate:
    def test_factory_runs_once(self) -> None:
        tracker = IdentityTracker()
        calls: list[int] = []

        def factory() -> Customer:
            calls.append(1)
            return Customer(id=1)

        first, first_new = tracker.get_or_create(Customer, 1, factory)
        second, second_new = tracker.get_or_create(Customer, 1, factory)
        assert first is second
        assert (first_new, second_new) == (True, False)
        assert len(calls) == 1

    def test_keys_are_per_type(self) -> None:
        tracker = IdentityTracker()
        customer, _ = tracker.get_or_create(Customer, 1, lambda: Customer(id=1))
        order, is_new = tracker.get_or_create(Order, 1, lambda: Order(id=1))
        assert is_new
        assert order is not customer

    def test_adopt_returns_tracked_instance(self) -> None:
        tracker = IdentityTracker()
        original = Tag(code="red")
        tracker.adopt(original, "red")
        duplicate, is_new = tracker.adopt(Tag(code="red"), "red")
        assert duplicate is original
        assert not is_new

    def test_unset_key_is_always_new(self) -> None:
        tracker = IdentityTracker()
        _, first_new = tracker.adopt(Customer(), None)
        _, second_new = tracker.adopt(Customer(), None)
        assert first_new and second_new
        assert tracker.get(Customer, None) is None


class TestVisited:
    def test_mark_once(self) -> None:
        tracker = IdentityTracker()
        customer = Customer()
        assert tracker.mark(customer) is True
        assert tracker.mark(customer) is False
        assert len(tracker) == 1

    def test_equal_records_are_distinct(self) -> None:
        tracker = IdentityTracker()
        assert tracker.mark(Customer(name="a"))
        assert tracker.mark(Customer(name="a"))
        assert len(tracker) == 2

    def test_finalize_registers_key(self) -> None:
        tracker = IdentityTracker()
        customer = Customer()
        tracker.mark(customer)
        customer.id = 7
        tracker.finalize(customer, 7)
        assert tracker.get(Customer, 7) is customer
