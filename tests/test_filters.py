"""
Tests for FiltersManager.
"""
from types import SimpleNamespace

import pytest

from annotations_tool.filters import FilterDefinition, FiltersManager, mine_filter


def _entry(is_mine):
    return SimpleNamespace(record=SimpleNamespace(is_mine=is_mine))


@pytest.fixture
def manager():
    m = FiltersManager()
    m.add_filter(FilterDefinition(id="long", label="Long", filter=lambda entries: entries))
    return m


def test_default_filters():
    assert [f.id for f in FiltersManager().get_filters()] == ["mine"]


def test_mine_filter_keeps_own_entries():
    mine, other = _entry(True), _entry(False)
    assert mine_filter([mine, other]) == [mine]


def test_switch_emits_on_state_change_only(manager):
    switched = []
    manager.switched.connect(switched.append)

    manager.switch_filter("mine", True)
    manager.switch_filter("mine", True)
    manager.switch_filter("unknown", True)

    assert switched == [{"id": "mine", "active": True}]
    assert manager.active_ids() == ["mine"]


def test_disable_filters(manager):
    manager.switch_filter("mine", True)
    manager.switch_filter("long", True)
    switched = []
    manager.switched.connect(switched.append)

    manager.disable_filters()

    assert manager.active_ids() == []
    assert [s["id"] for s in switched] == ["mine", "long"]


def test_copy_of_base_switches_independently(manager):
    manager.switch_filter("mine", True)
    copy = FiltersManager(base=manager)

    copy.switch_filter("mine", False)

    assert [f.id for f in copy.get_filters()] == ["mine", "long"]
    assert manager.active_ids() == ["mine"]
    assert copy.active_ids() == []


def test_duplicate_filter_id_is_refused(manager):
    with pytest.raises(ValueError):
        manager.add_filter(FilterDefinition(id="mine", label="again", filter=mine_filter))
