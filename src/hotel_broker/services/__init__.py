"""Adapters for the inventory, geocoding and payment upstreams."""

from .location_client import HereLocationClient, LocationLookup, MapboxLocationClient
from .payment_client import PaymentGatewayClient
from .search_client import InventoryClient

__all__ = [
    "HereLocationClient",
    "InventoryClient",
    "LocationLookup",
    "MapboxLocationClient",
    "PaymentGatewayClient",
]
