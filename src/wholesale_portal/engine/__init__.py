"""Engine subpackage - core pricing logic and price list resolution."""
from .pricing_engine import PricingEngine
from .price_lists import PriceListStore
from .models import PriceCalculationInput, PriceCalculation, PriceList

__all__ = ['PricingEngine', 'PriceListStore', 'PriceCalculationInput', 'PriceCalculation', 'PriceList']
