"""
Wholesale Portal Package

Business core of a B2B wholesale ordering portal.
Prices products through Tier → Volume → Clearance → Global discount layers
and runs quotes through a role-gated lifecycle up to order conversion.
"""

__version__ = "1.0.0"
