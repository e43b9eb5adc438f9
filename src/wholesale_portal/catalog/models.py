"""
Catalog data models - products, companies and portal users.
"""
from dataclasses import dataclass, field
from typing import Optional


ROLES = ('retailer', 'sales_rep', 'admin')


@dataclass
class Variant:
    id: str
    size: Optional[str] = None
    color: Optional[str] = None
    sku: Optional[str] = None
    stock: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'Variant':
        return cls(
            id=str(data['id']),
            size=data.get('size'),
            color=data.get('color'),
            sku=data.get('sku'),
            stock=data.get('stock'),
        )


@dataclass
class Product:
    """A catalog product as shown to buyers."""
    id: str
    name: str
    sku: str
    msrp: float
    category: Optional[str] = None
    description: Optional[str] = None
    cogs: Optional[float] = None
    order_types: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    variants: list[Variant] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'Product':
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            sku=data.get('sku', ''),
            msrp=float(data['msrp']),
            category=data.get('category'),
            description=data.get('description'),
            cogs=float(data['cogs']) if data.get('cogs') is not None else None,
            order_types=list(data.get('orderTypes') or []),
            tags=list(data.get('tags') or []),
            variants=[Variant.from_dict(v) for v in data.get('variants') or []],
        )


@dataclass
class Company:
    id: str
    name: str
    pricing_tier: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'Company':
        return cls(id=str(data['id']), name=data.get('name', ''), pricing_tier=data.get('pricingTier'))


@dataclass
class User:
    """An authenticated portal user (retailer buyer, sales rep or admin)."""
    id: str
    email: str
    name: str
    role: str
    company_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'User':
        role = data.get('role', 'retailer')
        if role not in ROLES:
            raise ValueError(f"Unknown role '{role}' for user {data.get('id')}")
        return cls(
            id=str(data['id']),
            email=data.get('email', ''),
            name=data.get('name', ''),
            role=role,
            company_id=data.get('companyId'),
        )
