"""
Identity Codec - Composite ids for customer records.

A customer is addressed by ``app/{app_id}/customer/{customer_id}``. The format
is part of persisted state, so decoding is strict: anything else is corrupt
state and raises ``MalformedIdentity``.
"""

from typing import Tuple

from errors import MalformedIdentity

APP_SEGMENT = "app"
CUSTOMER_SEGMENT = "customer"


def encode_customer_id(app_id: str, customer_id: str) -> str:
    """
    Build the composite id for a customer.

    Args:
        app_id: Owning app id.
        customer_id: Remote customer id.

    Returns:
        The composite id string.

    Raises:
        MalformedIdentity: If either component is empty or contains '/'.
    """
    for label, value in (("app id", app_id), ("customer id", customer_id)):
        if not value:
            raise MalformedIdentity(f"Cannot encode customer identity: empty {label}")
        if "/" in value:
            raise MalformedIdentity(
                f"Cannot encode customer identity: {label} '{value}' contains '/'"
            )
    return f"{APP_SEGMENT}/{app_id}/{CUSTOMER_SEGMENT}/{customer_id}"


def decode_customer_id(composite_id: str) -> Tuple[str, str]:
    """
    Split a composite id into ``(app_id, customer_id)``.

    Raises:
        MalformedIdentity: If the id is not exactly
            ``app/{app_id}/customer/{customer_id}`` with non-empty ids.
    """
    parts = (composite_id or "").split("/")
    if len(parts) != 4:
        raise MalformedIdentity(
            f"Malformed customer id '{composite_id}': expected "
            f"'{APP_SEGMENT}/<app_id>/{CUSTOMER_SEGMENT}/<customer_id>'"
        )

    if parts[0] != APP_SEGMENT or parts[2] != CUSTOMER_SEGMENT:
        raise MalformedIdentity(
            f"Malformed customer id '{composite_id}': unexpected segment names"
        )

    app_id, customer_id = parts[1], parts[3]
    if not app_id or not customer_id:
        raise MalformedIdentity(
            f"Malformed customer id '{composite_id}': empty app or customer id"
        )

    return app_id, customer_id
