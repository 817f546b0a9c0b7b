"""Docker daemon adapter.

Wraps the docker SDK behind the small surface the fetcher needs: local
image lookup, the pull progress stream, registry lookups through the
daemon's distribution endpoint, and OCI layout export.

The fetcher only depends on the ``DaemonClient`` protocol, so tests and
alternative engines can substitute their own implementation.
"""

from __future__ import annotations

import copy
import json
import tarfile
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol

import docker
import docker.errors

from pack_fetch.auth import decode_auth
from pack_fetch.constants import get_pull_timeout
from pack_fetch.errors import FetchError, NotFoundError, PullError
from pack_fetch.reference import parse_reference
from pack_fetch.utils import log_debug, symbol

OCI_LAYOUT_VERSION = "1.0.0"
OCI_INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
REF_NAME_ANNOTATION = "org.opencontainers.image.ref.name"


# ============================================================================
# Image Handles
# ============================================================================


class ImageHandle(Protocol):
    name: str

    @property
    def found(self) -> bool: ...

    def save(self) -> None: ...


class DaemonImage:
    """An image in the daemon's local store (or its absence)."""

    def __init__(self, name: str, image: Any | None) -> None:
        self.name = name
        self._image = image

    @property
    def found(self) -> bool:
        return self._image is not None

    @property
    def id(self) -> str:
        return self._image.id if self._image is not None else ""

    def save(self) -> None:
        """Daemon images are already persisted in the image store."""


class RegistryImage:
    """An image manifest resolved in a remote registry."""

    def __init__(self, name: str, registry_data: Any | None) -> None:
        self.name = name
        self._data = registry_data

    @property
    def found(self) -> bool:
        return self._data is not None

    @property
    def descriptor(self) -> dict[str, Any]:
        """Copy of the OCI descriptor (mediaType, digest, size) of the manifest."""
        if self._data is None:
            return {}
        return copy.deepcopy(self._data.attrs.get("Descriptor", {}))

    @property
    def digest(self) -> str:
        return self.descriptor.get("digest", "")

    def save(self) -> None:
        """Registry images are resolved in place; nothing is stored locally."""


class LayoutImage:
    """A registry image to be materialised as an OCI layout directory.

    A sparse layout holds ``oci-layout`` and an ``index.json`` pointing at
    the manifest digest, without any blobs. A full layout is exported from
    the daemon after pulling the image, blobs included.
    """

    def __init__(
        self,
        name: str,
        path: str | Path,
        remote: RegistryImage,
        *,
        sparse: bool,
        exporter: DockerDaemon | None = None,
        registry_auth: str = "",
        platform: str = "",
    ) -> None:
        self.name = name
        self.path = Path(path)
        self.sparse = sparse
        self._remote = remote
        self._exporter = exporter
        self._registry_auth = registry_auth
        self._platform = platform

    @property
    def found(self) -> bool:
        return self._remote.found

    def save(self) -> None:
        """Write the layout to ``self.path``.

        Raises:
            FetchError: If the layout cannot be written or exported.
        """
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            if self.sparse or self._exporter is None:
                self._write_sparse()
            else:
                self._exporter.export_layout(
                    self.name,
                    self.path,
                    registry_auth=self._registry_auth,
                    platform=self._platform,
                )
        except OSError as exc:
            raise FetchError(f"failed to write OCI layout at {self.path}: {exc}") from exc

    def _write_sparse(self) -> None:
        descriptor = self._remote.descriptor
        ref = parse_reference(self.name)
        if ref.tag:
            descriptor.setdefault("annotations", {})[REF_NAME_ANNOTATION] = ref.tag

        (self.path / "blobs" / "sha256").mkdir(parents=True, exist_ok=True)
        (self.path / "oci-layout").write_text(
            json.dumps({"imageLayoutVersion": OCI_LAYOUT_VERSION}), encoding="utf-8"
        )
        index = {
            "schemaVersion": 2,
            "mediaType": OCI_INDEX_MEDIA_TYPE,
            "manifests": [descriptor],
        }
        (self.path / "index.json").write_text(json.dumps(index, indent=2), encoding="utf-8")


# ============================================================================
# Daemon Client
# ============================================================================


class DaemonClient(Protocol):
    def lookup_local(self, name: str) -> ImageHandle: ...

    def lookup_remote(self, name: str, *, registry_auth: str = "") -> ImageHandle: ...

    def image_pull(
        self, name: str, *, registry_auth: str = "", platform: str = ""
    ) -> Iterable[dict[str, Any]]: ...

    def layout_image(
        self,
        name: str,
        *,
        path: str,
        sparse: bool,
        registry_auth: str = "",
        platform: str = "",
    ) -> ImageHandle: ...


def _auth_config(registry_auth: str) -> dict[str, Any] | None:
    return decode_auth(registry_auth) or None


class DockerDaemon:
    """``DaemonClient`` backed by the docker SDK.

    Args:
        client: Existing ``docker.DockerClient``; ``docker.from_env()`` is
            used on first access when omitted.
    """

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env(timeout=get_pull_timeout())
            except docker.errors.DockerException as exc:
                raise FetchError(f"cannot connect to the Docker daemon: {exc}") from exc
        return self._client

    def lookup_local(self, name: str) -> DaemonImage:
        try:
            image = self.client.images.get(name)
        except docker.errors.ImageNotFound:
            return DaemonImage(name, None)
        except docker.errors.APIError as exc:
            raise FetchError(f"failed to inspect image {name}: {exc}") from exc
        return DaemonImage(name, image)

    def lookup_remote(self, name: str, *, registry_auth: str = "") -> RegistryImage:
        try:
            data = self.client.images.get_registry_data(
                name, auth_config=_auth_config(registry_auth)
            )
        except docker.errors.NotFound:
            return RegistryImage(name, None)
        except docker.errors.APIError as exc:
            raise FetchError(f"failed to resolve {name} in registry: {exc}") from exc
        return RegistryImage(name, data)

    def image_pull(
        self, name: str, *, registry_auth: str = "", platform: str = ""
    ) -> Iterator[dict[str, Any]]:
        """Start a pull and return its decoded progress stream.

        Raises:
            NotFoundError: If the daemon cannot find *name*.
            PullError: For any other daemon error.
        """
        log_debug(f"Requesting pull of {name} (platform={platform or 'default'})")
        try:
            return self.client.api.pull(
                name,
                stream=True,
                decode=True,
                platform=platform or None,
                auth_config=_auth_config(registry_auth),
            )
        except docker.errors.NotFound as exc:
            raise NotFoundError(f"image {symbol(name)} does not exist on the daemon") from exc
        except docker.errors.APIError as exc:
            raise PullError(str(exc)) from exc

    def layout_image(
        self,
        name: str,
        *,
        path: str,
        sparse: bool,
        registry_auth: str = "",
        platform: str = "",
    ) -> LayoutImage:
        remote = self.lookup_remote(name, registry_auth=registry_auth)
        if not remote.found:
            raise NotFoundError(f"image {symbol(name)} does not exist in registry")
        return LayoutImage(
            name,
            path,
            remote,
            sparse=sparse,
            exporter=self,
            registry_auth=registry_auth,
            platform=platform,
        )

    def export_layout(
        self, name: str, path: Path, *, registry_auth: str = "", platform: str = ""
    ) -> None:
        """Pull *name* and unpack the daemon's OCI export into *path*.

        Requires Docker Engine 25 or newer, whose ``docker save`` output is
        an OCI image layout.
        """
        try:
            image = self.client.images.pull(
                name, platform=platform or None, auth_config=_auth_config(registry_auth)
            )
            chunks = image.save(named=True)
        except docker.errors.NotFound as exc:
            raise NotFoundError(f"image {symbol(name)} does not exist in registry") from exc
        except docker.errors.APIError as exc:
            raise PullError(str(exc)) from exc

        with tempfile.TemporaryFile() as archive:
            for chunk in chunks:
                archive.write(chunk)
            archive.seek(0)
            with tarfile.open(fileobj=archive, mode="r") as tar:
                if hasattr(tarfile, "data_filter"):
                    tar.extractall(path=str(path), filter="data")
                else:
                    tar.extractall(path=str(path))

        if not (path / "index.json").exists():
            raise FetchError(
                f"daemon export of {name} is not an OCI layout; "
                "Docker Engine 25 or newer is required"
            )
