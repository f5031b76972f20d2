"""Base resource class for AWS resources."""

import re
from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from aws_provisioner.resources.markers import Compare, ForceNew

# ${aws_kms_key.primary.arn} -> ("aws_kms_key.primary", "arn")
REFERENCE_PATTERN = re.compile(r"\$\{([a-z0-9_]+\.[a-zA-Z0-9_-]+)\.([a-z0-9_]+)\}")

_RESERVED_TAG_PREFIX = "aws:"


class Resource(BaseModel):
    """Base class for all AWS resources.

    Resources are pure data - they define the desired state.
    Handlers know how to CRUD resources.
    """

    model_config = ConfigDict(extra="forbid")

    resource_type: ClassVar[str]
    plan_priority: ClassVar[int] = 100
    # Attributes that cannot be recovered from AWS when importing by ID.
    import_ignore: ClassVar[frozenset[str]] = frozenset()

    name: str = Field(pattern=r"^[a-zA-Z0-9_-]+$")
    region: Annotated[str | None, ForceNew()] = Field(
        default=None, pattern=r"^[a-z]{2}(-[a-z]+)+-\d$"
    )
    tags: Annotated[dict[str, str], Compare("exact")] = Field(default_factory=dict)

    # Lifecycle
    depends_on: list[str] = []

    @field_validator("tags")
    @classmethod
    def _check_tag_keys(cls, v: dict[str, str]) -> dict[str, str]:
        for key in v:
            if not key:
                raise ValueError("tag keys must not be empty")
            if key.lower().startswith(_RESERVED_TAG_PREFIX):
                raise ValueError(f"tag key '{key}' uses the reserved 'aws:' prefix")
        return v

    def references(self) -> list[str]:
        """Addresses of other resources referenced through ``${type.name.attr}``."""
        found: list[str] = []
        for value in self.model_dump(exclude={"depends_on"}).values():
            for text in _iter_strings(value):
                for match in REFERENCE_PATTERN.finditer(text):
                    if match.group(1) not in found:
                        found.append(match.group(1))
        return found

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'aws_kms_key.primary')."""
        return f"{self.resource_type}.{self.name}"


def _iter_strings(value: object) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        return [s for v in value.values() for s in _iter_strings(v)]
    if isinstance(value, list):
        return [s for v in value for s in _iter_strings(v)]
    return []
