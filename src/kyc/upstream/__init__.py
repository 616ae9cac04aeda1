"""Clients for the upstream customer data API."""

from .client import CustomerDataClient, CustomerDataSource

__all__ = ["CustomerDataClient", "CustomerDataSource"]
