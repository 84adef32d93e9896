"""Data gateway backends."""

from dealerdesk.gateway.base import (
    KNOWN_PROCEDURES,
    KNOWN_TABLES,
    DataGateway,
    GatewayError,
    RowNotFoundError,
)
from dealerdesk.gateway.memory import InMemoryGateway
from dealerdesk.gateway.postgres import PostgresGateway
from dealerdesk.gateway.rest import RestGateway

__all__ = [
    "KNOWN_PROCEDURES",
    "KNOWN_TABLES",
    "DataGateway",
    "GatewayError",
    "InMemoryGateway",
    "PostgresGateway",
    "RestGateway",
    "RowNotFoundError",
]
