"""Remote API clients."""

from .distributor_client import DistributorClient
from .http_client import ApiClient, TransportError
from .storefront_client import StorefrontClient

__all__ = [
    "ApiClient",
    "DistributorClient",
    "StorefrontClient",
    "TransportError",
]
