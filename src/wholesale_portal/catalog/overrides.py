"""
Catalog Overrides - Admin edits layered over the catalog data.

Tag, product-field and variant overrides live in a KeyValueStore that is
created per application state and injected, never held at module level.
Overrides are ephemeral: nothing is written back to the data files.
"""
from copy import deepcopy
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Protocol
from uuid import uuid4

from loguru import logger

from ..exceptions import ValidationError
from .models import Product, Variant


EDITABLE_PRODUCT_FIELDS = ('name', 'category', 'msrp', 'cogs', 'order_types', 'description')
EDITABLE_VARIANT_FIELDS = ('size', 'color', 'sku', 'stock')


class KeyValueStore(Protocol):
    """Minimal key-value interface the override repositories depend on."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


class InMemoryKeyValueStore:
    """Dict-backed KeyValueStore."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data.keys()))

    def clear(self):
        self._data.clear()


def normalize_tags(tags: Optional[list[str]]) -> list[str]:
    """Trim, drop empties, de-duplicate keeping first-seen order."""
    if not tags:
        return []
    seen = []
    for tag in tags:
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _non_negative_number(value: Any, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a non-negative number")
    if number < 0:
        raise ValidationError(f"{label} must be a non-negative number")
    return number


@dataclass
class TagOperation:
    product_id: str
    add: list[str] = field(default_factory=list)
    remove: list[str] = field(default_factory=list)
    replace: list[str] = field(default_factory=list)


class TagOverrideRepository:
    """Per-product tag overrides. Replace wins over add/remove in one operation."""

    PREFIX = 'tags:'

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _key(self, product_id: str) -> str:
        return f"{self.PREFIX}{product_id}"

    def get_tags(self, product_id: str) -> list[str]:
        return list(self.store.get(self._key(product_id), []))

    def all(self) -> dict[str, list[str]]:
        return {
            key[len(self.PREFIX):]: list(self.store.get(key))
            for key in self.store.keys() if key.startswith(self.PREFIX)
        }

    def bulk_update(self, operations: list[TagOperation]) -> dict:
        updated = 0
        for op in operations:
            add = normalize_tags(op.add)
            remove = normalize_tags(op.remove)
            replacement = normalize_tags(op.replace)

            if replacement:
                self.store.set(self._key(op.product_id), replacement)
                updated += 1
                continue

            current = self.get_tags(op.product_id)
            for tag in add:
                if tag not in current:
                    current.append(tag)
            current = [t for t in current if t not in remove]
            self.store.set(self._key(op.product_id), current)
            updated += 1

        logger.info("Tag overrides updated for {} products", updated)
        return {'updated': updated}

    def apply(self, products: list[Product]) -> list[Product]:
        """Merge override tags onto product tags."""
        result = []
        for product in products:
            override = self.store.get(self._key(product.id))
            if override is None:
                result.append(product)
                continue
            merged = normalize_tags(list(product.tags) + list(override))
            result.append(dataclasses.replace(product, tags=merged))
        return result


@dataclass
class VariantOperation:
    """Variant edits for one product: updates by variant ID, additions, removals."""
    product_id: str
    updates: dict[str, dict] = field(default_factory=dict)
    add: list[dict] = field(default_factory=list)
    remove: list[str] = field(default_factory=list)


class ProductOverrideRepository:
    """Per-product field overrides and variant edits."""

    PREFIX = 'product:'

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _key(self, product_id: str) -> str:
        return f"{self.PREFIX}{product_id}"

    def _get(self, product_id: str) -> dict:
        return deepcopy(self.store.get(self._key(product_id), {}))

    def all(self) -> dict[str, dict]:
        return {
            key[len(self.PREFIX):]: deepcopy(self.store.get(key))
            for key in self.store.keys() if key.startswith(self.PREFIX)
        }

    def bulk_edit(self, product_ids: list[str], updates: dict) -> dict:
        """Apply the same field changes to many products."""
        unknown = [k for k in updates if k not in EDITABLE_PRODUCT_FIELDS]
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
        updates = dict(updates)
        for key, label in (('msrp', 'MSRP'), ('cogs', 'COGS')):
            if key in updates:
                updates[key] = _non_negative_number(updates[key], label)

        for product_id in product_ids:
            override = self._get(product_id)
            fields = override.get('fields', {})
            fields.update(updates)
            override['fields'] = fields
            self.store.set(self._key(product_id), override)

        logger.info("Bulk edit of {} applied to {} products", sorted(updates), len(product_ids))
        return {'updated': len(product_ids)}

    def update_variants(self, op: VariantOperation) -> dict:
        override = self._get(op.product_id)
        variants = override.setdefault('variants', {'update': {}, 'remove': [], 'add': []})

        for variant_id, changes in op.updates.items():
            unknown = [k for k in changes if k not in EDITABLE_VARIANT_FIELDS]
            if unknown:
                raise ValidationError(f"Variant fields not editable: {', '.join(sorted(unknown))}")
            current = variants['update'].get(variant_id, {})
            current.update(changes)
            variants['update'][variant_id] = current

        for variant_id in op.remove:
            if variant_id not in variants['remove']:
                variants['remove'].append(variant_id)

        for added in op.add:
            entry = dict(added)
            entry.setdefault('id', f"var-{uuid4().hex[:8]}")
            variants['add'].append(entry)

        self.store.set(self._key(op.product_id), override)
        return {'updated': True}

    def apply(self, products: list[Product]) -> list[Product]:
        result = []
        for product in products:
            override = self.store.get(self._key(product.id))
            if not override:
                result.append(product)
                continue

            fields = override.get('fields', {})
            updated = dataclasses.replace(product, **fields) if fields else product

            variant_ops = override.get('variants')
            if variant_ops:
                kept = [
                    dataclasses.replace(v, **variant_ops['update'].get(v.id, {}))
                    for v in updated.variants if v.id not in variant_ops['remove']
                ]
                added = [Variant.from_dict(v) for v in variant_ops['add']]
                updated = dataclasses.replace(updated, variants=kept + added)

            result.append(updated)
        return result
