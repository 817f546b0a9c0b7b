"""Image reference parsing, registry mirrors and ledger keys.

References follow the Docker distribution grammar::

    [registry[:port]/]repository[:tag][@algorithm:hex]

A first path component is a registry when it contains ``.`` or ``:`` or is
``localhost``. Docker Hub names are normalised to ``docker.io`` and
single-component Hub repositories gain the ``library/`` prefix.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from pack_fetch.constants import DEFAULT_REGISTRY, DEFAULT_TAG, MIRROR_WILDCARD
from pack_fetch.errors import InvalidReferenceError
from pack_fetch.utils import log_info, symbol

_HUB_ALIASES = frozenset({"docker.io", "index.docker.io", "registry-1.docker.io"})

_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_REPOSITORY_RE = re.compile(rf"{_COMPONENT}(?:/{_COMPONENT})*")
_TAG_RE = re.compile(r"[\w][\w.-]{0,127}")
_DIGEST_RE = re.compile(r"[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[0-9a-fA-F]{32,}")


class ImageReference(NamedTuple):
    registry: str
    repository: str
    tag: str = ""
    digest: str = ""

    @property
    def name(self) -> str:
        """``registry/repository`` without tag or digest."""
        return f"{self.registry}/{self.repository}"

    @property
    def identifier(self) -> str:
        """The ``:tag``, ``@digest`` or ``:tag@digest`` suffix."""
        suffix = f":{self.tag}" if self.tag else ""
        if self.digest:
            suffix += f"@{self.digest}"
        return suffix

    def __str__(self) -> str:
        return f"{self.name}{self.identifier}"


def normalize_registry(registry: str) -> str:
    return DEFAULT_REGISTRY if registry in _HUB_ALIASES else registry


def _is_registry(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_reference(name: str) -> ImageReference:
    """Split *name* into its registry, repository, tag and digest.

    The tag defaults to ``latest`` unless a digest is given.

    Raises:
        InvalidReferenceError: If *name* is not a valid image reference.
    """
    if not name or name != name.strip():
        raise InvalidReferenceError(f"invalid image reference {name!r}")

    remainder, _, digest = name.partition("@")
    if digest and not _DIGEST_RE.fullmatch(digest):
        raise InvalidReferenceError(f"invalid digest {digest!r} in {name!r}")

    tag = ""
    last_slash = remainder.rfind("/")
    colon = remainder.rfind(":")
    if colon > last_slash:
        remainder, tag = remainder[:colon], remainder[colon + 1:]
        if not _TAG_RE.fullmatch(tag):
            raise InvalidReferenceError(f"invalid tag {tag!r} in {name!r}")

    first, sep, rest = remainder.partition("/")
    if sep and _is_registry(first):
        registry, repository = normalize_registry(first), rest
    else:
        registry, repository = DEFAULT_REGISTRY, remainder

    if registry == DEFAULT_REGISTRY and "/" not in repository:
        repository = f"library/{repository}"

    if not _REPOSITORY_RE.fullmatch(repository):
        raise InvalidReferenceError(f"invalid repository {repository!r} in {name!r}")

    if not tag and not digest:
        tag = DEFAULT_TAG

    return ImageReference(registry, repository, tag, digest)


def _find_mirror(registry: str, mirrors: dict[str, str]) -> str | None:
    if MIRROR_WILDCARD in mirrors:
        return mirrors[MIRROR_WILDCARD]
    for source, mirror in mirrors.items():
        if normalize_registry(source) == registry:
            return mirror
    return None


def translate_registry(name: str, mirrors: dict[str, str] | None) -> str:
    """Rewrite *name* to pull through a configured registry mirror.

    The ``*`` entry applies to every registry and wins over an exact
    registry entry. Names with no applicable mirror are returned unchanged.
    """
    if not mirrors:
        return name

    ref = parse_reference(name)
    mirror = _find_mirror(ref.registry, mirrors)
    if mirror is None:
        return name

    translated = f"{mirror.rstrip('/')}/{ref.repository}{ref.identifier}"
    # validate the rewritten name before handing it to the daemon
    parse_reference(translated)
    log_info(f"Using mirror {symbol(translated)} for {name}")
    return translated


def ledger_key(name: str, mirrors: dict[str, str] | None = None) -> str:
    """Return the canonical ledger key of the logical image *name* names.

    The key is ``registry/repository:tag``. Digests are dropped, and a name
    already rewritten to a mirror is mapped back to its source registry, so
    ``busybox``, ``busybox@sha256:...`` and ``mirror.local/library/busybox``
    share one entry.
    """
    ref = parse_reference(name)
    registry, repository = ref.registry, ref.repository

    for source, mirror in (mirrors or {}).items():
        if source == MIRROR_WILDCARD:
            continue
        prefix = mirror.rstrip("/") + "/"
        if ref.name.startswith(prefix):
            registry = normalize_registry(source)
            repository = ref.name[len(prefix):]
            if registry == DEFAULT_REGISTRY and "/" not in repository:
                repository = f"library/{repository}"
            break

    return f"{registry}/{repository}:{ref.tag or DEFAULT_TAG}"
