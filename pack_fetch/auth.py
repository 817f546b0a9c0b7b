"""Registry credential resolution.

A keychain maps a registry host to a Docker auth config dict (or None for
anonymous access). The daemon expects that config as a base64-encoded JSON
blob alongside every pull.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from typing import Any

import docker.auth
import docker.errors

from pack_fetch.errors import FetchError
from pack_fetch.reference import parse_reference
from pack_fetch.utils import log_debug

Keychain = Callable[[str], "dict[str, Any] | None"]


def default_keychain(registry: str) -> dict[str, Any] | None:
    """Resolve credentials for *registry* from the Docker CLI config.

    Honours ``credsStore``/``credHelpers`` entries through the docker SDK.
    """
    config = docker.auth.load_config()
    return docker.auth.resolve_authconfig(config, registry)


def encode_auth(auth_config: dict[str, Any] | None) -> str:
    """Encode an auth config the way the daemon's X-Registry-Auth header wants it."""
    data = json.dumps(auth_config or {}).encode("utf-8")
    return base64.urlsafe_b64encode(data).decode("ascii")


def decode_auth(registry_auth: str) -> dict[str, Any]:
    """Inverse of :func:`encode_auth`. The empty string decodes to ``{}``."""
    if not registry_auth:
        return {}
    return json.loads(base64.urlsafe_b64decode(registry_auth.encode("ascii")))


def registry_auth(name: str, keychain: Keychain = default_keychain) -> str:
    """Return the base64 auth blob for the registry serving *name*.

    Raises:
        FetchError: If the keychain fails to resolve credentials.
    """
    registry = parse_reference(name).registry
    try:
        auth_config = keychain(registry)
    except (docker.errors.DockerException, OSError, ValueError) as exc:
        raise FetchError(f"resolve auth for ref {name}: {exc}") from exc

    if auth_config:
        log_debug(f"Using stored credentials for {registry}")
    return encode_auth(auth_config)
