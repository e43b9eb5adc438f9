"""
Price List Store - Resolves the effective price list for a company.

Price lists and their company assignments are loaded from price_lists.json.
Assignments are held in a DataFrame so resolution is a filter + sort:

1. Assignments for the company
2. Whose price list's effective window contains the lookup time
3. Lowest priority number first
4. Ties: most recently assigned first, then price list ID ascending
"""
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd
from loguru import logger

from ..clock import utcnow
from ..exceptions import NotFoundError
from .models import PriceList, PriceListAssignment


ASSIGNMENT_COLUMNS = ['company_id', 'price_list_id', 'priority', 'assigned_at']


class PriceListStore:
    """In-memory price lists plus the assignment table."""

    def __init__(self, price_lists: list[PriceList] = None,
                 assignments: list[PriceListAssignment] = None):
        self.price_lists: dict[str, PriceList] = {pl.id: pl for pl in price_lists or []}
        self.assignments: list[PriceListAssignment] = list(assignments or [])
        self._build_assignment_table()

    @classmethod
    def load(cls, path: Path) -> 'PriceListStore':
        """Load price lists and assignments from JSON."""
        if not path.exists():
            raise FileNotFoundError(f"Price list data not found at {path}.")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        price_lists = [PriceList.from_dict(pl) for pl in data.get('priceLists', [])]
        assignments = [PriceListAssignment.from_dict(a) for a in data.get('assignments', [])]
        logger.info(
            "Loaded {} price lists and {} assignments from {}",
            len(price_lists), len(assignments), path,
        )
        return cls(price_lists, assignments)

    def _build_assignment_table(self):
        rows = [
            {
                'company_id': a.company_id,
                'price_list_id': a.price_list_id,
                'priority': a.priority,
                'assigned_at': a.assigned_at,
            }
            for a in self.assignments
        ]
        self._table = pd.DataFrame(rows, columns=ASSIGNMENT_COLUMNS)
        self._table['priority'] = pd.to_numeric(self._table['priority'])
        self._table['assigned_at'] = pd.to_datetime(self._table['assigned_at'], utc=True)

    def add_assignment(self, assignment: PriceListAssignment):
        """Assign a price list to a company."""
        if assignment.price_list_id not in self.price_lists:
            raise NotFoundError(f"Price list '{assignment.price_list_id}' not found")
        self.assignments.append(assignment)
        self._build_assignment_table()

    def get(self, price_list_id: str) -> PriceList:
        """Get a price list by ID."""
        price_list = self.price_lists.get(price_list_id)
        if price_list is None:
            raise NotFoundError(f"Price list '{price_list_id}' not found")
        return price_list

    def all(self) -> list[PriceList]:
        return list(self.price_lists.values())

    def resolve_for_company(self, company_id: str, at: Optional[datetime] = None) -> Optional[PriceList]:
        """
        Resolve the single effective price list for a company.

        Returns None when the company has no effective assignment; callers
        then fall back to tier-only pricing.
        """
        at = at or utcnow()
        candidates = self._table[self._table['company_id'] == str(company_id)]
        if candidates.empty:
            return None

        effective_ids = [
            pl_id for pl_id in candidates['price_list_id'].unique()
            if pl_id in self.price_lists and self.price_lists[pl_id].is_effective(at)
        ]
        candidates = candidates[candidates['price_list_id'].isin(effective_ids)]
        if candidates.empty:
            logger.warning("No effective price list for company {} at {}", company_id, at.isoformat())
            return None

        ordered = candidates.sort_values(
            ['priority', 'assigned_at', 'price_list_id'],
            ascending=[True, False, True],
            na_position='last',
            kind='mergesort',
        )
        return self.price_lists[ordered.iloc[0]['price_list_id']]
