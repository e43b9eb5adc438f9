"""
Price list loading and per-company resolution.
"""
from datetime import datetime, timezone

import pytest

from wholesale_portal.engine.models import PriceList, PriceListAssignment
from wholesale_portal.engine.price_lists import PriceListStore
from wholesale_portal.exceptions import NotFoundError

from conftest import FIXED_NOW


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def store(settings):
    return PriceListStore.load(settings.price_lists_file)


def test_load_bundled_price_lists(store):
    assert {pl.id for pl in store.all()} == {'pl-summit-2025', 'pl-summit-legacy', 'pl-riverbend'}

    summit = store.get('pl-summit-2025')
    assert summit.base_tier == 'tier-2'
    assert summit.get_rule('prod-2').fixed_price == 42.0
    assert [vb.min_qty for vb in summit.get_rule('prod-1').volume_breaks] == [10, 50]
    assert store.get('pl-riverbend').clearance_rules.max_discount_percent == 60


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        PriceListStore.load(tmp_path / 'nope.json')


def test_get_unknown_price_list(store):
    with pytest.raises(NotFoundError):
        store.get('pl-does-not-exist')


def test_lowest_priority_number_wins(store):
    assert store.resolve_for_company('company-1', at=FIXED_NOW).id == 'pl-summit-2025'


def test_falls_back_when_preferred_list_not_yet_effective(store):
    assert store.resolve_for_company('company-1', at=utc(2024, 6, 1)).id == 'pl-summit-legacy'


def test_expired_list_resolves_to_none(store):
    assert store.resolve_for_company('company-2', at=FIXED_NOW).id == 'pl-riverbend'
    assert store.resolve_for_company('company-2', at=utc(2027, 1, 1)) is None


def test_company_without_assignment(store):
    assert store.resolve_for_company('company-3', at=FIXED_NOW) is None


def test_priority_tie_broken_by_most_recent_assignment():
    store = PriceListStore(
        [PriceList(id='pl-a', name='A'), PriceList(id='pl-b', name='B')],
        [
            PriceListAssignment('company-x', 'pl-a', priority=1, assigned_at=utc(2025, 1, 1)),
            PriceListAssignment('company-x', 'pl-b', priority=1, assigned_at=utc(2025, 3, 1)),
        ],
    )
    assert store.resolve_for_company('company-x', at=FIXED_NOW).id == 'pl-b'


def test_full_tie_broken_by_price_list_id():
    store = PriceListStore(
        [PriceList(id='pl-b', name='B'), PriceList(id='pl-a', name='A')],
        [
            PriceListAssignment('company-x', 'pl-b', priority=1, assigned_at=utc(2025, 1, 1)),
            PriceListAssignment('company-x', 'pl-a', priority=1, assigned_at=utc(2025, 1, 1)),
        ],
    )
    assert store.resolve_for_company('company-x', at=FIXED_NOW).id == 'pl-a'


def test_undated_assignment_sorts_after_dated():
    store = PriceListStore(
        [PriceList(id='pl-a', name='A'), PriceList(id='pl-b', name='B')],
        [
            PriceListAssignment('company-x', 'pl-a', priority=1),
            PriceListAssignment('company-x', 'pl-b', priority=1, assigned_at=utc(2024, 1, 1)),
        ],
    )
    assert store.resolve_for_company('company-x', at=FIXED_NOW).id == 'pl-b'


def test_add_assignment(store):
    store.add_assignment(PriceListAssignment('company-3', 'pl-riverbend', priority=1, assigned_at=FIXED_NOW))
    assert store.resolve_for_company('company-3', at=FIXED_NOW).id == 'pl-riverbend'

    with pytest.raises(NotFoundError):
        store.add_assignment(PriceListAssignment('company-3', 'pl-missing'))
