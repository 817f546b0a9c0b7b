"""Unit tests for pack_fetch.daemon.

The docker SDK client is a MagicMock, so tests run without Docker.
"""

from __future__ import annotations

import io
import json
import tarfile
from unittest.mock import MagicMock

import docker.errors
import pytest

from pack_fetch.auth import encode_auth
from pack_fetch.daemon import DockerDaemon, LayoutImage, RegistryImage
from pack_fetch.errors import FetchError, NotFoundError, PullError

DESCRIPTOR = {
    "mediaType": "application/vnd.oci.image.index.v1+json",
    "digest": "sha256:" + "b" * 64,
    "size": 1234,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _registry_data():
    data = MagicMock()
    data.attrs = {"Descriptor": dict(DESCRIPTOR)}
    return data


def _oci_tar(files):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name, content in files.items():
            payload = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))
    data = buf.getvalue()
    return [data[:100], data[100:]]


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def daemon(client):
    return DockerDaemon(client)


# ---------------------------------------------------------------------------
# Local lookup
# ---------------------------------------------------------------------------


class TestLookupLocal:
    def test_found(self, daemon, client):
        client.images.get.return_value = MagicMock(id="sha256:abc")
        image = daemon.lookup_local("busybox")
        assert image.found
        assert image.id == "sha256:abc"
        client.images.get.assert_called_once_with("busybox")

    def test_missing(self, daemon, client):
        client.images.get.side_effect = docker.errors.ImageNotFound("no such image")
        image = daemon.lookup_local("busybox")
        assert not image.found
        assert image.id == ""

    def test_api_error(self, daemon, client):
        client.images.get.side_effect = docker.errors.APIError("daemon down")
        with pytest.raises(FetchError, match="inspect"):
            daemon.lookup_local("busybox")


# ---------------------------------------------------------------------------
# Pull stream
# ---------------------------------------------------------------------------


class TestImagePull:
    def test_streams_decoded_messages(self, daemon, client):
        client.api.pull.return_value = iter([{"status": "Pulling"}])
        stream = daemon.image_pull("busybox", registry_auth=encode_auth(None))
        assert list(stream) == [{"status": "Pulling"}]
        client.api.pull.assert_called_once_with(
            "busybox", stream=True, decode=True, platform=None, auth_config=None
        )

    def test_platform_and_credentials(self, daemon, client):
        daemon.image_pull(
            "ghcr.io/org/app",
            registry_auth=encode_auth({"username": "u"}),
            platform="linux/arm64",
        )
        _, kwargs = client.api.pull.call_args
        assert kwargs["platform"] == "linux/arm64"
        assert kwargs["auth_config"] == {"username": "u"}

    def test_not_found(self, daemon, client):
        client.api.pull.side_effect = docker.errors.NotFound("manifest unknown")
        with pytest.raises(NotFoundError):
            daemon.image_pull("busybox")

    def test_api_error_keeps_daemon_text(self, daemon, client):
        client.api.pull.side_effect = docker.errors.APIError(
            "image was found but does not match the specified platform"
        )
        with pytest.raises(PullError, match="does not match the specified platform"):
            daemon.image_pull("busybox", platform="linux/arm64")


# ---------------------------------------------------------------------------
# Registry lookup
# ---------------------------------------------------------------------------


class TestLookupRemote:
    def test_found(self, daemon, client):
        client.images.get_registry_data.return_value = _registry_data()
        image = daemon.lookup_remote("busybox")
        assert image.found
        assert image.digest == DESCRIPTOR["digest"]

    def test_missing(self, daemon, client):
        client.images.get_registry_data.side_effect = docker.errors.NotFound("unknown")
        assert not daemon.lookup_remote("busybox").found

    def test_api_error(self, daemon, client):
        client.images.get_registry_data.side_effect = docker.errors.APIError("unauthorized")
        with pytest.raises(FetchError, match="registry"):
            daemon.lookup_remote("busybox")

    def test_missing_handle_has_empty_descriptor(self):
        assert RegistryImage("busybox", None).descriptor == {}


# ---------------------------------------------------------------------------
# OCI layout
# ---------------------------------------------------------------------------


class TestLayoutImage:
    def test_missing_in_registry(self, daemon, client, tmp_path):
        client.images.get_registry_data.side_effect = docker.errors.NotFound("unknown")
        with pytest.raises(NotFoundError):
            daemon.layout_image("busybox", path=str(tmp_path), sparse=True)

    def test_sparse_layout_written(self, daemon, client, tmp_path):
        client.images.get_registry_data.return_value = _registry_data()
        layout = tmp_path / "layout"

        image = daemon.layout_image("busybox:1.36", path=str(layout), sparse=True)
        assert isinstance(image, LayoutImage)
        image.save()

        assert json.loads((layout / "oci-layout").read_text()) == {"imageLayoutVersion": "1.0.0"}
        index = json.loads((layout / "index.json").read_text())
        manifest = index["manifests"][0]
        assert manifest["digest"] == DESCRIPTOR["digest"]
        assert manifest["annotations"]["org.opencontainers.image.ref.name"] == "1.36"
        assert list((layout / "blobs" / "sha256").iterdir()) == []
        client.images.pull.assert_not_called()

    def test_sparse_layout_leaves_registry_data_untouched(self, daemon, client, tmp_path):
        data = _registry_data()
        data.attrs["Descriptor"]["annotations"] = {"org.example.team": "build"}
        client.images.get_registry_data.return_value = data

        daemon.layout_image("busybox:1.36", path=str(tmp_path / "layout"), sparse=True).save()

        assert data.attrs["Descriptor"]["annotations"] == {"org.example.team": "build"}
        index = json.loads((tmp_path / "layout" / "index.json").read_text())
        assert index["manifests"][0]["annotations"] == {
            "org.example.team": "build",
            "org.opencontainers.image.ref.name": "1.36",
        }

    def test_full_layout_exported_from_daemon(self, daemon, client, tmp_path):
        client.images.get_registry_data.return_value = _registry_data()
        exported = MagicMock()
        exported.save.return_value = _oci_tar({
            "oci-layout": '{"imageLayoutVersion": "1.0.0"}',
            "index.json": '{"schemaVersion": 2, "manifests": []}',
            "blobs/sha256/" + "c" * 64: "layer",
        })
        client.images.pull.return_value = exported
        layout = tmp_path / "layout"

        daemon.layout_image(
            "busybox", path=str(layout), sparse=False, platform="linux/amd64"
        ).save()

        assert (layout / "index.json").exists()
        assert (layout / "blobs" / "sha256" / ("c" * 64)).read_text() == "layer"
        _, kwargs = client.images.pull.call_args
        assert kwargs["platform"] == "linux/amd64"

    def test_legacy_export_rejected(self, daemon, client, tmp_path):
        client.images.get_registry_data.return_value = _registry_data()
        exported = MagicMock()
        exported.save.return_value = _oci_tar({"manifest.json": "[]"})
        client.images.pull.return_value = exported

        image = daemon.layout_image("busybox", path=str(tmp_path / "layout"), sparse=False)
        with pytest.raises(FetchError, match="OCI layout"):
            image.save()
