"""Quotes subpackage - quote records, lifecycle rules and the quote service."""
from .models import Order, Quote, QuoteFilter, QuoteRequest, QuoteRequestItem, QuoteRevision
from .repository import OrderRepository, QuoteRepository
from .service import QuoteService

__all__ = [
    'Order', 'Quote', 'QuoteFilter', 'QuoteRequest', 'QuoteRequestItem', 'QuoteRevision',
    'OrderRepository', 'QuoteRepository', 'QuoteService',
]
