"""Default resource type registry factory."""

from __future__ import annotations

from aws_provisioner.engine.kms_key_handler import KmsKeyHandler
from aws_provisioner.engine.kms_replica_key_handler import KmsReplicaKeyHandler
from aws_provisioner.engine.license_configuration_handler import LicenseConfigurationHandler
from aws_provisioner.engine.prometheus_workspace_handler import PrometheusWorkspaceHandler
from aws_provisioner.engine.registry import ResourceTypeRegistry
from aws_provisioner.resources.kms import KmsKeyResource, KmsReplicaKeyResource
from aws_provisioner.resources.license_configuration import LicenseConfigurationResource
from aws_provisioner.resources.prometheus import PrometheusWorkspaceResource


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types and handlers."""
    registry = ResourceTypeRegistry()

    registry.register(KmsKeyResource, KmsKeyHandler())
    registry.register(KmsReplicaKeyResource, KmsReplicaKeyHandler())
    registry.register(LicenseConfigurationResource, LicenseConfigurationHandler())
    registry.register(PrometheusWorkspaceResource, PrometheusWorkspaceHandler())

    return registry
