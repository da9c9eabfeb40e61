# src/cloud/provider_factory.py - v1
"""Factory: instantiate the cloud provider from configuration."""

from __future__ import annotations

from flashinstall.cloud.base_provider import BaseCloudProvider
from flashinstall.cloud.models import CloudProviderConfig


def create_cloud_provider(config: CloudProviderConfig) -> BaseCloudProvider:
    """Create the provider named by ``config.provider``.

    Raises:
        ValueError: If the provider is not supported.
        ImportError: If the provider's SDK is not installed.
    """
    if config.provider == "s3":
        from flashinstall.cloud.s3_provider import S3Provider
        return S3Provider(config)

    if config.provider == "azure":
        from flashinstall.cloud.azure_provider import AzureProvider
        return AzureProvider(config)

    if config.provider == "gcp":
        from flashinstall.cloud.gcp_provider import GCPProvider
        return GCPProvider(config)

    raise ValueError(f"Unsupported cloud provider: {config.provider!r}")
