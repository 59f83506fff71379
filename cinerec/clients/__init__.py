"""Clients for the upstream identity, purchase-history and catalog services."""

from cinerec.clients.base import RestClient, UpstreamError
from cinerec.clients.catalog import CatalogClient
from cinerec.clients.identity import IdentityClient
from cinerec.clients.purchases import PurchaseClient
from cinerec.clients.schemas import Envelope, Movie, Reservation, TimeSlot, User

__all__ = [
    "CatalogClient",
    "Envelope",
    "IdentityClient",
    "Movie",
    "PurchaseClient",
    "Reservation",
    "RestClient",
    "TimeSlot",
    "UpstreamError",
    "User",
]
