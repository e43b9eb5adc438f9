"""
Product Catalog - Mock catalog data with admin overrides applied.

Products, companies and users are read once from the JSON data files.
Every read of products goes through the tag and product override
repositories so admin edits show up immediately.
"""
import json
from pathlib import Path
from typing import Optional

from loguru import logger

from ..exceptions import NotFoundError
from .models import Company, Product, User
from .overrides import (
    InMemoryKeyValueStore,
    KeyValueStore,
    ProductOverrideRepository,
    TagOverrideRepository,
)


def _read_json(path: Path, key: str) -> list[dict]:
    if not path.exists():
        logger.warning("Data file {} not found, starting with no {}", path, key)
        return []
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return data.get(key, []) if isinstance(data, dict) else data


class ProductCatalog:
    """Products with overrides, plus the company and user directories."""

    def __init__(self, products: list[Product] = None, companies: list[Company] = None,
                 users: list[User] = None, store: Optional[KeyValueStore] = None):
        self._products: dict[str, Product] = {p.id: p for p in products or []}
        self.companies: dict[str, Company] = {c.id: c for c in companies or []}
        self.users: dict[str, User] = {u.id: u for u in users or []}

        store = store if store is not None else InMemoryKeyValueStore()
        self.tag_overrides = TagOverrideRepository(store)
        self.product_overrides = ProductOverrideRepository(store)

    @classmethod
    def load(cls, products_file: Path, companies_file: Path, users_file: Path,
             store: Optional[KeyValueStore] = None) -> 'ProductCatalog':
        products = [Product.from_dict(p) for p in _read_json(products_file, 'products')]
        companies = [Company.from_dict(c) for c in _read_json(companies_file, 'companies')]
        users = [User.from_dict(u) for u in _read_json(users_file, 'users')]
        logger.info(
            "Catalog loaded: {} products, {} companies, {} users",
            len(products), len(companies), len(users),
        )
        return cls(products, companies, users, store=store)

    def list_products(self, search: Optional[str] = None, category: Optional[str] = None,
                      tag: Optional[str] = None) -> list[Product]:
        """List products with overrides applied, optionally filtered."""
        products = self.product_overrides.apply(list(self._products.values()))
        products = self.tag_overrides.apply(products)

        if search:
            needle = search.lower()
            products = [
                p for p in products
                if needle in p.name.lower() or needle in p.sku.lower()
            ]
        if category:
            products = [p for p in products if p.category == category]
        if tag:
            products = [p for p in products if tag in p.tags]
        return products

    def get_product(self, product_id: str) -> Product:
        """Get one product with overrides applied."""
        if product_id not in self._products:
            raise NotFoundError(f"Product {product_id} not found")
        product = self.product_overrides.apply([self._products[product_id]])
        return self.tag_overrides.apply(product)[0]

    def has_product(self, product_id: str) -> bool:
        return product_id in self._products

    def get_company(self, company_id: str) -> Optional[Company]:
        return self.companies.get(company_id)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)
