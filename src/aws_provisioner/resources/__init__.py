"""AWS resource definitions."""

from aws_provisioner.resources.base import Resource
from aws_provisioner.resources.kms import KmsKeyResource, KmsReplicaKeyResource
from aws_provisioner.resources.license_configuration import LicenseConfigurationResource
from aws_provisioner.resources.prometheus import PrometheusWorkspaceResource

__all__ = [
    "KmsKeyResource",
    "KmsReplicaKeyResource",
    "LicenseConfigurationResource",
    "PrometheusWorkspaceResource",
    "Resource",
]
