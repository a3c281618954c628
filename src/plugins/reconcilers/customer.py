"""
Customer Reconciler - Vendor customer (license) records.

Customers are addressed by the composite id ``app/{app_id}/customer/{id}``.
Every write sends the complete declared record, every read replaces the
whole state from the remote record, and delete archives instead of removing.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Type

from errors import ValidationError, is_customer_not_found
from identity import decode_customer_id, encode_customer_id
from models import (
    CUSTOMER_FLAG_FIELDS,
    DEFAULT_LICENSE_TYPE,
    Customer,
    CustomerConfig,
    CustomerOpts,
    CustomerState,
    EntitlementValue,
    normalize_expires_at,
)
from plugins.reconcilers.base import ReconcilerPlugin, ReconcileResult

logger = logging.getLogger(__name__)


def entitlement_pairs(values: Dict[str, str]) -> List[Tuple[str, str]]:
    """Flatten a declared entitlement mapping in iteration order."""
    return [(name, str(value)) for name, value in values.items()]


def entitlement_mapping(entitlements: List[EntitlementValue]) -> Dict[str, str]:
    """Fold a remote entitlement list into a mapping; later names win."""
    mapping: Dict[str, str] = {}
    for entitlement in entitlements:
        mapping[entitlement.name] = entitlement.value
    return mapping


def owning_app_id(customer: Customer, fallback: str) -> str:
    """App id from the customer's first channel, else the fallback."""
    if customer.channels and customer.channels[0].app_id:
        return customer.channels[0].app_id
    return fallback


def customer_state_from_record(
    app_id: str, customer: Customer, composite_id: Optional[str] = None
) -> CustomerState:
    """Build the full persisted state from a remote customer record."""
    flags = {flag: getattr(customer, flag) for flag in CUSTOMER_FLAG_FIELDS}
    return CustomerState(
        id=composite_id or encode_customer_id(app_id, customer.id),
        app_id=app_id,
        channel_id=customer.channels[0].id if customer.channels else "",
        name=customer.name,
        email=customer.email,
        entitlement_values=entitlement_mapping(customer.entitlements),
        expires_at=customer.formatted_expires_at(),
        type=customer.type,
        **flags,
    )


class CustomerReconciler(ReconcilerPlugin):
    """Reconciler for the 'replicated_customer' kind."""

    @property
    def name(self) -> str:
        return "replicated_customer"

    @property
    def config_type(self) -> Type:
        return CustomerConfig

    @property
    def state_type(self) -> Type:
        return CustomerState

    @property
    def schema(self) -> Dict[str, Any]:
        properties: Dict[str, Any] = {
            "app_id": {"type": "string", "minLength": 1},
            "channel_id": {"type": "string", "minLength": 1},
            "name": {"type": "string", "minLength": 1},
            "email": {"type": "string"},
            "entitlement_values": {
                "type": "object",
                "additionalProperties": {"type": "string"},
            },
            "expires_at": {"type": "string"},
            "type": {"type": "string"},
        }
        for flag in CUSTOMER_FLAG_FIELDS:
            properties[flag] = {"type": "boolean"}

        return {
            "type": "object",
            "required": ["app_id", "channel_id", "name"],
            "additionalProperties": False,
            "properties": properties,
        }

    def parse_config(self, spec: Dict[str, Any]) -> CustomerConfig:
        config = super().parse_config(spec)
        try:
            config.expires_at = normalize_expires_at(config.expires_at)
        except ValueError as e:
            raise ValidationError(
                f"Invalid {self.name} spec: expires_at: {config.expires_at!r} "
                f"is not an ISO 8601 date or timestamp"
            ) from e
        return config

    async def create(self, config: CustomerConfig) -> ReconcileResult:
        _check_required(config, "create")

        customer = await self.client.create_customer(_customer_opts(config))
        app_id = owning_app_id(customer, config.app_id)
        state = customer_state_from_record(app_id, customer)

        logger.info(f"Created customer {state.id}")
        return ReconcileResult(state=state, message="created")

    async def read(self, state: CustomerState) -> ReconcileResult:
        app_id, customer_id = decode_customer_id(state.id)

        try:
            customer = await self.client.get_customer(app_id, customer_id)
        except Exception as e:
            if is_customer_not_found(e):
                logger.warning(
                    f"Customer {state.id} no longer exists, dropping from state"
                )
                return ReconcileResult.drop(f"customer {state.id} not found")
            raise

        if customer.is_archived:
            logger.warning(f"Customer {state.id} is archived on the vendor side")
        return ReconcileResult(
            state=customer_state_from_record(app_id, customer), message="refreshed"
        )

    async def update(
        self, state: CustomerState, config: CustomerConfig
    ) -> ReconcileResult:
        _check_required(config, "update")
        _, customer_id = decode_customer_id(state.id)

        customer = await self.client.update_customer(
            customer_id, _customer_opts(config)
        )
        updated = customer_state_from_record(
            config.app_id, customer, composite_id=state.id
        )

        logger.info(f"Updated customer {state.id}")
        return ReconcileResult(state=updated, message="updated")

    async def delete(self, state: CustomerState) -> None:
        _, customer_id = decode_customer_id(state.id)
        await self.client.archive_customer(customer_id)

    async def import_state(self, resource_id: str) -> ReconcileResult:
        app_id, _ = decode_customer_id(resource_id)
        placeholder = CustomerState(
            app_id=app_id, channel_id="", name="", id=resource_id
        )
        return await self.read(placeholder)


def _check_required(config: CustomerConfig, action: str) -> None:
    missing = [
        name for name in ("app_id", "channel_id", "name") if not getattr(config, name)
    ]
    if missing:
        raise ValidationError(
            f"Unable to {action} customer: missing {', '.join(missing)}"
        )


def _customer_opts(config: CustomerConfig) -> CustomerOpts:
    return CustomerOpts(
        app_id=config.app_id,
        channel_ids=[config.channel_id],
        name=config.name,
        email=config.email,
        entitlement_values=entitlement_pairs(config.entitlement_values),
        expires_at=config.expires_at,
        license_type=config.type or DEFAULT_LICENSE_TYPE,
        flags=config.flags(),
    )
