"""Catalog subpackage - products, companies, users and admin overrides."""
from .catalog import ProductCatalog
from .models import Company, Product, User, Variant
from .overrides import InMemoryKeyValueStore, TagOperation, VariantOperation

__all__ = [
    'ProductCatalog', 'Company', 'Product', 'User', 'Variant',
    'InMemoryKeyValueStore', 'TagOperation', 'VariantOperation',
]
