"""
Admin catalog overrides layered over the bundled product data.
"""
import pytest

from wholesale_portal.catalog.catalog import ProductCatalog
from wholesale_portal.catalog.overrides import (
    InMemoryKeyValueStore,
    TagOperation,
    TagOverrideRepository,
    VariantOperation,
    normalize_tags,
)
from wholesale_portal.exceptions import NotFoundError, ValidationError


@pytest.fixture
def catalog(settings):
    return ProductCatalog.load(settings.products_file, settings.companies_file, settings.users_file)


def test_catalog_loads_bundled_data(catalog):
    assert len(catalog.list_products()) == 5
    assert catalog.get_company('company-2').pricing_tier == 'tier-1'
    assert catalog.get_user('user-4').role == 'sales_rep'
    assert catalog.get_user('user-99') is None


def test_list_products_filters(catalog):
    assert [p.id for p in catalog.list_products(category='Outerwear')] == ['prod-1', 'prod-5']
    assert [p.id for p in catalog.list_products(search='shb')] == ['prod-3']
    assert [p.id for p in catalog.list_products(tag='closeout')] == ['prod-4', 'prod-5']


def test_unknown_product(catalog):
    with pytest.raises(NotFoundError):
        catalog.get_product('prod-404')


def test_normalize_tags():
    assert normalize_tags([' sale ', 'sale', '', 'new']) == ['sale', 'new']
    assert normalize_tags(None) == []


def test_tag_add_and_remove():
    repo = TagOverrideRepository(InMemoryKeyValueStore())
    repo.bulk_update([TagOperation('prod-1', add=['featured', 'spring'])])
    result = repo.bulk_update([TagOperation('prod-1', remove=['spring']), TagOperation('prod-2', add=['new'])])

    assert result == {'updated': 2}
    assert repo.get_tags('prod-1') == ['featured']
    assert repo.all() == {'prod-1': ['featured'], 'prod-2': ['new']}


def test_tag_replace_wins_over_add_and_remove():
    repo = TagOverrideRepository(InMemoryKeyValueStore())
    repo.bulk_update([TagOperation('prod-1', add=['old'])])
    repo.bulk_update([TagOperation('prod-1', add=['ignored'], remove=['old'], replace=['fresh', 'fresh '])])

    assert repo.get_tags('prod-1') == ['fresh']


def test_tag_overrides_merge_onto_product_tags(catalog):
    catalog.tag_overrides.bulk_update([TagOperation('prod-1', add=['featured', 'bestseller'])])

    assert catalog.get_product('prod-1').tags == ['bestseller', 'featured']
    assert [p.id for p in catalog.list_products(tag='featured')] == ['prod-1']


def test_bulk_edit_fields(catalog):
    result = catalog.product_overrides.bulk_edit(['prod-1', 'prod-3'], {'category': 'Sale', 'msrp': '180'})

    assert result == {'updated': 2}
    assert catalog.get_product('prod-1').msrp == 180.0
    assert catalog.get_product('prod-3').category == 'Sale'
    assert catalog.get_product('prod-2').category == 'Base Layers'


def test_bulk_edit_rejects_bad_input(catalog):
    with pytest.raises(ValidationError):
        catalog.product_overrides.bulk_edit(['prod-1'], {'sku': 'NEW'})
    with pytest.raises(ValidationError):
        catalog.product_overrides.bulk_edit(['prod-1'], {'msrp': -5})
    for bad in ('abc', None, [1]):
        with pytest.raises(ValidationError, match="MSRP must be a non-negative number"):
            catalog.product_overrides.bulk_edit(['prod-1'], {'msrp': bad})
    with pytest.raises(ValidationError, match="COGS must be a non-negative number"):
        catalog.product_overrides.bulk_edit(['prod-1'], {'cogs': 'n/a'})
    assert catalog.get_product('prod-1').msrp == 200.0


def test_bulk_edit_cogs(catalog):
    catalog.product_overrides.bulk_edit(['prod-2'], {'cogs': '31.5'})
    assert catalog.get_product('prod-2').cogs == 31.5


def test_variant_update_add_and_remove(catalog):
    catalog.product_overrides.update_variants(VariantOperation(
        product_id='prod-1',
        updates={'var-1a': {'stock': 5}},
        add=[{'size': 'XL', 'color': 'Red'}],
        remove=['var-1b'],
    ))
    variants = catalog.get_product('prod-1').variants

    assert [v.id for v in variants][0] == 'var-1a'
    assert variants[0].stock == 5
    assert len(variants) == 2
    assert variants[1].size == 'XL'
    assert variants[1].id.startswith('var-')


def test_variant_update_rejects_unknown_fields(catalog):
    with pytest.raises(ValidationError):
        catalog.product_overrides.update_variants(
            VariantOperation(product_id='prod-1', updates={'var-1a': {'price': 1}})
        )


def test_overrides_do_not_leak_between_catalogs(settings):
    first = ProductCatalog.load(settings.products_file, settings.companies_file, settings.users_file)
    second = ProductCatalog.load(settings.products_file, settings.companies_file, settings.users_file)
    first.tag_overrides.bulk_update([TagOperation('prod-3', add=['only-here'])])

    assert 'only-here' in first.get_product('prod-3').tags
    assert 'only-here' not in second.get_product('prod-3').tags
