"""
Declared Manifest - YAML file listing the vendor objects to manage.

    resources:
      - kind: replicated_cluster
        name: ci
        spec: {distribution: kind, wait_duration: 10m}

Each entry names a resource kind, a unique name within that kind and the
kind-specific spec. Spec contents are validated by the reconciler for the
kind, not here.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

# Kubernetes-style name pattern: lowercase alphanumeric, hyphens, max 63 chars
NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
MAX_NAME_LENGTH = 63
MAX_SPEC_SIZE = 1024 * 1024  # 1MB max per spec


class ManifestError(Exception):
    """Raised when the manifest cannot be read or is malformed."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def validate_name_format(value: str, field_name: str) -> str:
    """Validate that a name follows Kubernetes naming conventions."""
    if not value:
        raise ValueError(f"{field_name} cannot be empty")
    if len(value) > MAX_NAME_LENGTH:
        raise ValueError(f"{field_name} cannot exceed {MAX_NAME_LENGTH} characters")
    if not NAME_PATTERN.match(value):
        raise ValueError(
            f"{field_name} must consist of lowercase alphanumeric characters or '-', "
            f"must start and end with an alphanumeric character"
        )
    return value


class ResourceDeclaration(BaseModel):
    """One declared vendor object."""

    kind: str = Field(..., description="Resource kind", min_length=1)
    name: str = Field(..., description="Resource name", examples=["ci-cluster"])
    spec: Dict[str, Any] = Field(default_factory=dict)
    import_id: Optional[str] = Field(
        default=None,
        description="Adopt this existing remote object instead of creating one",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_name_format(v, "name")

    @field_validator("spec", mode="before")
    @classmethod
    def validate_spec(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict) and len(json.dumps(v, default=str)) > MAX_SPEC_SIZE:
            raise ValueError(f"spec exceeds maximum size of {MAX_SPEC_SIZE // 1024}KB")
        return v

    @property
    def key(self) -> tuple:
        return (self.kind, self.name)


class Manifest(BaseModel):
    """The full set of declared objects."""

    resources: List[ResourceDeclaration] = Field(default_factory=list)

    @field_validator("resources", mode="before")
    @classmethod
    def default_resources(cls, v: Any) -> Any:
        return [] if v is None else v

    @model_validator(mode="after")
    def check_unique(self) -> "Manifest":
        seen = set()
        for resource in self.resources:
            if resource.key in seen:
                raise ValueError(
                    f"duplicate resource {resource.kind}/{resource.name}"
                )
            seen.add(resource.key)
        return self


def parse_manifest(data: Any) -> Manifest:
    """
    Build a Manifest from already-decoded YAML.

    Raises:
        ManifestError: If the structure is invalid.
    """
    if data is None:
        return Manifest()
    if not isinstance(data, dict):
        raise ManifestError("manifest must be a mapping with a 'resources' list")

    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '(root)'}: {err['msg']}"
            for err in e.errors()
        )
        raise ManifestError(f"invalid manifest: {details}") from e


def load_manifest(path: Union[str, Path]) -> List[ResourceDeclaration]:
    """
    Read and validate the manifest file.

    Raises:
        ManifestError: If the file is missing, is not YAML or is malformed.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ManifestError(f"cannot read manifest {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ManifestError(f"cannot parse manifest {path}: {e}") from e

    manifest = parse_manifest(data)
    logger.debug(f"Loaded {len(manifest.resources)} resource(s) from {path}")
    return manifest.resources
