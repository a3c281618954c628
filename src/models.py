"""
Vendor Models - Remote records, request options, declared config and state.

Remote records are parsed with pydantic at the gateway boundary; unknown
fields are ignored. Declared configuration and persisted state are plain
dataclasses so the driver can store them as JSON.
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_LICENSE_TYPE = "trial"
EXPIRES_AT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Declared flag name -> request field name used by the vendor API.
CUSTOMER_FLAG_FIELDS: Dict[str, str] = {
    "is_airgap_enabled": "is_airgap_enabled",
    "is_embedded_cluster_download_enabled": "is_embedded_cluster_download_enabled",
    "is_geoaxis_supported": "is_geoaxis_supported",
    "is_gitops_supported": "is_gitops_supported",
    "is_helmvm_download_enabled": "is_helm_vm_download_enabled",
    "is_identity_service_supported": "is_identity_service_supported",
    "is_installer_support_enabled": "is_installer_support_enabled",
    "is_kots_install_enabled": "is_kots_install_enabled",
    "is_snapshot_supported": "is_snapshot_supported",
    "is_support_bundle_upload_enabled": "is_support_bundle_upload_enabled",
}

T = TypeVar("T")


class ClusterStatus(str, Enum):
    """Status of a vendor cluster. Unrecognised values map to UNKNOWN."""

    QUEUED = "queued"
    ASSIGNED = "assigned"
    PENDING = "pending"
    PREPARING = "preparing"
    PROVISIONING = "provisioning"
    RUNNING = "running"
    UPGRADING = "upgrading"
    UPGRADE_ERROR = "upgrade_error"
    ERROR = "error"
    TERMINATED = "terminated"
    DELETED = "deleted"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN

    @property
    def is_failed(self) -> bool:
        return self in (ClusterStatus.ERROR, ClusterStatus.UPGRADE_ERROR)


# ==================== Remote records ====================


class Cluster(BaseModel):
    """Cluster record returned by the vendor API."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    kubernetes_distribution: str = ""
    kubernetes_version: str = ""
    instance_type: str = ""
    node_count: int = 0
    disk_gib: int = 0
    ttl: str = ""
    status: ClusterStatus = ClusterStatus.UNKNOWN

    @field_validator(
        "name", "kubernetes_distribution", "kubernetes_version", "instance_type", "ttl",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("node_count", "disk_gib", mode="before")
    @classmethod
    def _none_as_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> ClusterStatus:
        if isinstance(v, ClusterStatus):
            return v
        return ClusterStatus(v)


@dataclass
class CreateClusterResult:
    """Outcome of a cluster create call."""

    cluster: Optional[Cluster] = None
    validation_errors: List[str] = field(default_factory=list)


class EntitlementValue(BaseModel):
    """A single entitlement name/value pair."""

    name: str
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> str:
        return "" if v is None else str(v)


class CustomerChannel(BaseModel):
    """Channel a customer is assigned to."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    app_id: str = Field("", alias="appId")
    name: str = ""


class Customer(BaseModel):
    """Customer (license) record returned by the vendor API."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str = ""
    email: str = ""
    type: str = ""
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    is_archived: bool = Field(False, alias="isArchived")
    channels: List[CustomerChannel] = Field(default_factory=list)
    entitlements: List[EntitlementValue] = Field(default_factory=list)

    is_airgap_enabled: bool = Field(False, alias="airgap")
    is_embedded_cluster_download_enabled: bool = Field(
        False, alias="isEmbeddedClusterDownloadEnabled"
    )
    is_geoaxis_supported: bool = Field(False, alias="isGeoaxisSupported")
    is_gitops_supported: bool = Field(False, alias="isGitopsSupported")
    is_helmvm_download_enabled: bool = Field(False, alias="isHelmVmDownloadEnabled")
    is_identity_service_supported: bool = Field(
        False, alias="isIdentityServiceSupported"
    )
    is_installer_support_enabled: bool = Field(
        False, alias="isInstallerSupportEnabled"
    )
    is_kots_install_enabled: bool = Field(False, alias="isKotsInstallEnabled")
    is_snapshot_supported: bool = Field(False, alias="isSnapshotSupported")
    is_support_bundle_upload_enabled: bool = Field(
        False, alias="isSupportBundleUploadEnabled"
    )

    @field_validator("name", "email", "type", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("expires_at", mode="before")
    @classmethod
    def _empty_as_none(cls, v: Any) -> Any:
        return None if v in ("", None) else v

    @field_validator("channels", "entitlements", mode="before")
    @classmethod
    def _none_as_list(cls, v: Any) -> Any:
        return [] if v is None else v

    def formatted_expires_at(self) -> str:
        """Expiry as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC, or "" when unset."""
        if self.expires_at is None:
            return ""
        return format_expires_at(self.expires_at)


def format_expires_at(expires: datetime) -> str:
    """Render an expiry in UTC; naive values are taken as UTC."""
    if expires.tzinfo is not None:
        expires = expires.astimezone(timezone.utc)
    return expires.strftime(EXPIRES_AT_FORMAT)


def normalize_expires_at(value: str) -> str:
    """
    Rewrite a declared ISO 8601 date or timestamp in the form reads produce.

    Raises:
        ValueError: If the value is not an ISO 8601 date or timestamp.
    """
    if not value:
        return ""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return format_expires_at(datetime.fromisoformat(text))


# ==================== Request options ====================


@dataclass
class CreateClusterOpts:
    """Cluster create request. Unset (zero) fields are left to the server."""

    kubernetes_distribution: str
    name: str = ""
    kubernetes_version: str = ""
    instance_type: str = ""
    disk_gib: int = 0
    node_count: int = 0
    ttl: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value}


@dataclass
class CustomerOpts:
    """Customer create/update request. Always carries every field."""

    app_id: str
    channel_ids: List[str]
    name: str
    email: str = ""
    entitlement_values: List[Tuple[str, str]] = field(default_factory=list)
    expires_at: str = ""
    license_type: str = DEFAULT_LICENSE_TYPE
    flags: Dict[str, bool] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "app_id": self.app_id,
            "channel_id": self.channel_ids[0] if self.channel_ids else "",
            "channels": [{"channel_id": channel_id} for channel_id in self.channel_ids],
            "name": self.name,
            "email": self.email,
            "entitlementValues": [
                {"name": name, "value": value}
                for name, value in self.entitlement_values
            ],
            "expires_at": self.expires_at,
            "type": self.license_type,
        }
        for flag, wire_name in CUSTOMER_FLAG_FIELDS.items():
            payload[wire_name] = bool(self.flags.get(flag, False))
        return payload


# ==================== Declared config and persisted state ====================


@dataclass
class ClusterConfig:
    """Declared configuration of a cluster."""

    distribution: str
    name: str = ""
    version: str = ""
    instance_type: str = ""
    disk: int = 0
    nodes: int = 0
    ttl: str = ""
    wait_duration: str = ""


@dataclass
class ClusterState(ClusterConfig):
    """Persisted state of a cluster."""

    id: str = ""
    kubeconfig: str = field(default="", repr=False)


@dataclass
class CustomerConfig:
    """Declared configuration of a customer."""

    app_id: str
    channel_id: str
    name: str
    email: str = ""
    entitlement_values: Dict[str, str] = field(default_factory=dict)
    expires_at: str = ""
    is_airgap_enabled: bool = False
    is_embedded_cluster_download_enabled: bool = False
    is_geoaxis_supported: bool = False
    is_gitops_supported: bool = False
    is_helmvm_download_enabled: bool = False
    is_identity_service_supported: bool = False
    is_installer_support_enabled: bool = True
    is_kots_install_enabled: bool = False
    is_snapshot_supported: bool = False
    is_support_bundle_upload_enabled: bool = False
    type: str = DEFAULT_LICENSE_TYPE

    def flags(self) -> Dict[str, bool]:
        return {flag: getattr(self, flag) for flag in CUSTOMER_FLAG_FIELDS}


@dataclass
class CustomerState(CustomerConfig):
    """Persisted state of a customer."""

    id: str = ""


def record_from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
    """
    Build a config or state dataclass from a plain dict.

    Keys the dataclass does not declare are ignored and ``None`` values fall
    back to the field default.
    """
    known = {f.name for f in fields(cls)}
    kwargs = {k: v for k, v in data.items() if k in known and v is not None}
    return cls(**kwargs)


def record_to_dict(record: Any) -> Dict[str, Any]:
    """Serialise a config or state dataclass to a plain dict."""
    return asdict(record)
