"""License Manager license configuration resource model."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal, Self

from pydantic import Field, model_validator

from aws_provisioner.resources.base import Resource
from aws_provisioner.resources.markers import APIParam, ForceNew

LicenseCountingType = Literal["vCPU", "Instance", "Core", "Socket"]


class LicenseConfigurationResource(Resource):
    """A License Manager license configuration.

    ``license_name`` is the name shown in AWS; it defaults to the resource
    name. Counting type and rules cannot be changed in place.
    """

    resource_type: ClassVar[str] = "aws_licensemanager_license_configuration"

    license_name: Annotated[str | None, APIParam("Name")] = Field(
        default=None, min_length=1, max_length=1024
    )
    description: Annotated[str, APIParam("Description")] = ""
    license_count: Annotated[int | None, APIParam("LicenseCount")] = Field(default=None, ge=0)
    license_count_hard_limit: Annotated[bool, APIParam("LicenseCountHardLimit")] = False
    license_counting_type: Annotated[
        LicenseCountingType, APIParam("LicenseCountingType"), ForceNew()
    ]
    license_rules: Annotated[list[str], APIParam("LicenseRules"), ForceNew()] = Field(
        default_factory=list
    )

    @model_validator(mode="after")
    def _defaults(self) -> Self:
        if self.license_name is None:
            self.license_name = self.name
        for rule in self.license_rules:
            key, sep, value = rule.partition("=")
            if not key.startswith("#") or len(key) < 2 or not sep or not value:
                raise ValueError(f"license rule '{rule}' must look like '#ruleName=value'")
        return self
