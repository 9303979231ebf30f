"""Permit portal scrapers: leaf parsers, city configuration and extraction strategies."""
from .base import ExtractionStrategy, create_strategy
from .config import CITIES, CityConfig, get_city_config, get_enabled_cities
from .models import ExtractionResult, PermitRecord

__all__ = [
    'CITIES',
    'CityConfig',
    'ExtractionResult',
    'ExtractionStrategy',
    'PermitRecord',
    'create_strategy',
    'get_city_config',
    'get_enabled_cities',
]
