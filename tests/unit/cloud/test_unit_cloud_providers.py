# tests/unit/cloud/test_unit_cloud_providers.py - v1
"""Tests for cloud providers - SDK calls and error translation (mocked clients)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, NoCredentialsError

from flashinstall.cloud.azure_provider import AzureProvider
from flashinstall.cloud.base_provider import classify_error, status_code_of
from flashinstall.cloud.gcp_provider import GCPProvider
from flashinstall.cloud.models import CloudProviderConfig
from flashinstall.cloud.provider_factory import create_cloud_provider
from flashinstall.cloud.s3_provider import S3Provider
from flashinstall.core.errors import CloudAuthError, CloudNotFound, CloudUnavailable


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "HeadObject",
    )


@pytest.fixture
def config():
    return CloudProviderConfig(provider="s3", bucket="team-cache", region="us-east-1")


class TestClassifyError:
    def test_status_from_botocore_response(self):
        assert status_code_of(_client_error("NoSuchKey", 404)) == 404

    def test_status_from_attribute(self):
        exc = Exception("denied")
        exc.status_code = 403  # type: ignore[attr-defined]
        assert isinstance(classify_error(exc, "ctx"), CloudAuthError)

    def test_unknown_is_unavailable(self):
        error = classify_error(ConnectionError("reset"), "ctx", "k")
        assert isinstance(error, CloudUnavailable)
        assert error.remote_key == "k"


class TestS3Provider:
    @pytest.mark.asyncio
    async def test_upload_download(self, config, tmp_path):
        client = MagicMock()
        provider = S3Provider(config, client=client)
        local = tmp_path / "a.tgz"
        local.write_bytes(b"x")
        await provider.upload_file(local, "team/packages/a.tgz")
        client.upload_file.assert_called_once_with(str(local), "team-cache", "team/packages/a.tgz")

        await provider.download_file("team/packages/a.tgz", tmp_path / "out" / "a.tgz")
        client.download_file.assert_called_once_with(
            "team-cache", "team/packages/a.tgz", str(tmp_path / "out" / "a.tgz")
        )
        assert (tmp_path / "out").is_dir()

    @pytest.mark.asyncio
    async def test_size_and_exists(self, config):
        client = MagicMock()
        client.head_object.return_value = {"ContentLength": 42}
        provider = S3Provider(config, client=client)
        assert await provider.get_file_size("k") == 42
        assert await provider.file_exists("k")

    @pytest.mark.asyncio
    async def test_missing_object(self, config):
        client = MagicMock()
        client.head_object.side_effect = _client_error("404", 404)
        provider = S3Provider(config, client=client)
        assert await provider.get_file_size("k") is None
        assert not await provider.file_exists("k")

    @pytest.mark.asyncio
    async def test_download_not_found(self, config, tmp_path):
        client = MagicMock()
        client.download_file.side_effect = _client_error("404", 404)
        with pytest.raises(CloudNotFound):
            await S3Provider(config, client=client).download_file("k", tmp_path / "k")

    @pytest.mark.asyncio
    async def test_access_denied(self, config, tmp_path):
        client = MagicMock()
        client.upload_file.side_effect = _client_error("AccessDenied", 403)
        local = tmp_path / "a"
        local.write_bytes(b"")
        with pytest.raises(CloudAuthError):
            await S3Provider(config, client=client).upload_file(local, "k")

    @pytest.mark.asyncio
    async def test_no_credentials(self, config):
        client = MagicMock()
        client.delete_object.side_effect = NoCredentialsError()
        with pytest.raises(CloudAuthError):
            await S3Provider(config, client=client).delete_file("k")

    @pytest.mark.asyncio
    async def test_list_paginates(self, config):
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "p/b.tgz"}]},
            {"Contents": [{"Key": "p/a.tgz"}]},
            {},
        ]
        assert await S3Provider(config, client=client).list_files("p/") == ["p/a.tgz", "p/b.tgz"]


class TestAzureProvider:
    @pytest.mark.asyncio
    async def test_operations(self, tmp_path):
        config = CloudProviderConfig(provider="azure", bucket="cache")
        container = MagicMock()
        container.list_blobs.return_value = [SimpleNamespace(name="x/b"), SimpleNamespace(name="x/a")]
        container.get_blob_client.return_value.get_blob_properties.return_value = SimpleNamespace(size=7)
        provider = AzureProvider(config, container=container)

        local = tmp_path / "f"
        local.write_bytes(b"data")
        await provider.upload_file(local, "x/a")
        assert container.upload_blob.call_args.kwargs["name"] == "x/a"
        assert await provider.list_files("x/") == ["x/a", "x/b"]
        assert await provider.get_file_size("x/a") == 7

    @pytest.mark.asyncio
    async def test_not_found(self):
        config = CloudProviderConfig(provider="azure", bucket="cache")
        container = MagicMock()
        error = Exception("BlobNotFound")
        error.status_code = 404  # type: ignore[attr-defined]
        container.get_blob_client.return_value.get_blob_properties.side_effect = error
        assert await AzureProvider(config, container=container).get_file_size("x") is None


class TestGCPProvider:
    @pytest.mark.asyncio
    async def test_operations(self, tmp_path):
        config = CloudProviderConfig(provider="gcp", bucket="cache")
        bucket = MagicMock()
        bucket.get_blob.return_value = None
        bucket.list_blobs.return_value = [SimpleNamespace(name="p/a")]
        provider = GCPProvider(config, bucket=bucket)

        assert await provider.get_file_size("p/a") is None
        assert await provider.list_files("p/") == ["p/a"]
        await provider.delete_file("p/a")
        bucket.blob.assert_called_with("p/a")
        bucket.blob.return_value.delete.assert_called_once()

    @pytest.mark.asyncio
    async def test_server_error(self, tmp_path):
        config = CloudProviderConfig(provider="gcp", bucket="cache")
        bucket = MagicMock()
        error = Exception("Service Unavailable")
        error.code = 503  # type: ignore[attr-defined]
        bucket.blob.return_value.download_to_filename.side_effect = error
        with pytest.raises(CloudUnavailable):
            await GCPProvider(config, bucket=bucket).download_file("p/a", tmp_path / "a")


class TestProviderFactory:
    def test_s3(self, config):
        provider = create_cloud_provider(config)
        assert isinstance(provider, S3Provider)
        assert provider.name == "s3"
