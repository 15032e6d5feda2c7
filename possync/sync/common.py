"""Helpers shared by the catalog and order orchestrators."""

from typing import Any, Callable

from sqlalchemy.exc import DBAPIError

from possync.integrations.clover.api_client import CloverAPIClient

ClientFactory = Callable[[str], CloverAPIClient]


def default_client_factory(access_token: str) -> CloverAPIClient:
    return CloverAPIClient(access_token=access_token)


def record_key(record: Any) -> str:
    """Clover identifier used to label a record in error messages."""
    if not isinstance(record, dict):
        return "<invalid record>"
    if record.get("id"):
        return str(record["id"])
    item = record.get("item")
    if isinstance(item, dict) and item.get("id"):
        return str(item["id"])
    return "<unknown>"


def describe_error(error: Exception) -> str:
    # Driver errors carry the useful message; the wrapper adds the full SQL statement
    if isinstance(error, DBAPIError) and error.orig is not None:
        return str(error.orig)
    return str(error)
