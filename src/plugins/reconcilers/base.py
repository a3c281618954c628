"""
Reconciler Plugin Base - Abstract interface for resource reconcilers.

A reconciler owns create/read/update/delete for one kind of vendor object.
The driver hands it declared configuration and prior state; it returns new
state, asks for the object to be dropped from state, or raises a
ReconcileError. Reconcilers are discovered via Python entry points.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from typing import Any, Dict, FrozenSet, List, Optional, Type

from errors import ValidationError
from models import record_from_dict, record_to_dict
from validation import validate_spec_against_schema
from vendor_client import VendorAPIClient

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result from a reconciler operation."""

    state: Optional[Any] = None
    dropped: bool = False
    message: str = ""

    @classmethod
    def drop(cls, message: str) -> "ReconcileResult":
        """The remote object is gone; the driver removes it from state."""
        return cls(state=None, dropped=True, message=message)


class ReconcilerContext:
    """
    Dependencies provided to reconcilers by the driver.

    Built once at startup and shared by every reconciler. The vendor API
    client is the only shared handle and is used read-only.
    """

    def __init__(self, client: VendorAPIClient):
        self.client = client


class ReconcilerPlugin(ABC):
    """
    Abstract base class for reconciler plugins.

    Subclasses declare the config and state dataclasses they work with, a
    JSON Schema for declared specs, and which declared fields force the
    driver to replace rather than update the remote object.

    Reconcilers are discovered via Python entry points in the
    'vendor_reconciler.reconcilers' group.
    """

    # Declared fields whose change needs delete + create.
    replace_fields: FrozenSet[str] = frozenset()
    # Declared fields the remote side fills in when left unset.
    computed_fields: FrozenSet[str] = frozenset()

    def __init__(self):
        self._ctx: Optional[ReconcilerContext] = None

    def configure(self, ctx: ReconcilerContext) -> None:
        """Attach the shared dependencies."""
        self._ctx = ctx

    @property
    def client(self) -> VendorAPIClient:
        if self._ctx is None:
            raise RuntimeError(
                f"Reconciler '{self.name}' is not configured. "
                "Call configure() before performing operations."
            )
        return self._ctx.client

    @property
    @abstractmethod
    def name(self) -> str:
        """Resource kind handled by this reconciler (e.g. 'replicated_cluster')."""
        pass

    @property
    @abstractmethod
    def config_type(self) -> Type:
        """Dataclass of the declared configuration."""
        pass

    @property
    @abstractmethod
    def state_type(self) -> Type:
        """Dataclass of the persisted state."""
        pass

    @property
    @abstractmethod
    def schema(self) -> Dict[str, Any]:
        """JSON Schema (Draft 7) for declared specs."""
        pass

    def parse_config(self, spec: Dict[str, Any]) -> Any:
        """
        Validate a declared spec and build the config record.

        Raises:
            ValidationError: If the declaration does not match the schema.
        """
        is_valid, error = validate_spec_against_schema(spec, self.schema)
        if not is_valid:
            raise ValidationError(f"Invalid {self.name} spec: {error}")
        return record_from_dict(self.config_type, spec)

    def state_from_dict(self, data: Dict[str, Any]) -> Any:
        return record_from_dict(self.state_type, data)

    def state_to_dict(self, state: Any) -> Dict[str, Any]:
        return record_to_dict(state)

    def diff(self, state: Any, config: Any) -> List[str]:
        """
        List declared fields whose desired value differs from state.

        Computed fields left unset in the declaration are not compared.
        """
        changed = []
        for f in fields(self.config_type):
            desired = getattr(config, f.name)
            if f.name in self.computed_fields and not desired:
                continue
            if desired != getattr(state, f.name):
                changed.append(f.name)
        return changed

    @abstractmethod
    async def create(self, config: Any) -> ReconcileResult:
        """Create the remote object from declared configuration."""
        pass

    @abstractmethod
    async def read(self, state: Any) -> ReconcileResult:
        """Refresh state from the remote object, or drop it if gone."""
        pass

    @abstractmethod
    async def update(self, state: Any, config: Any) -> ReconcileResult:
        """Bring the remote object in line with new declared configuration."""
        pass

    @abstractmethod
    async def delete(self, state: Any) -> None:
        """Remove the remote object."""
        pass

    @abstractmethod
    async def import_state(self, resource_id: str) -> ReconcileResult:
        """Adopt an existing remote object given its id."""
        pass

    async def discard(self, remote_object: Any) -> None:
        """
        Remove a remote object that a failed create left behind.

        Called by the driver when a ReconcileError carries ``remote_object``,
        since no state is persisted for it. Kinds whose create is atomic
        never set it.
        """
        logger.warning(
            f"{self.name} cannot discard {remote_object!r}; it is left in place"
        )
