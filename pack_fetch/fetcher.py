"""Image fetch orchestration.

``Fetcher.fetch`` decides where an image comes from and whether the
network has to be touched:

* an OCI layout directory, when a layout path is requested;
* the registry, when the caller does not target the daemon;
* the daemon, gated by the pull policy and the pull ledger.

Ledger bookkeeping is best effort: a ledger failure is logged and never
stops an image from being delivered.
"""

from __future__ import annotations

import sys
import threading
from datetime import timedelta
from enum import Enum
from typing import TextIO

from pack_fetch.auth import Keychain, default_keychain, registry_auth
from pack_fetch.constants import PLATFORM_MISMATCH_PHRASE
from pack_fetch.daemon import DaemonClient, ImageHandle
from pack_fetch.errors import FetchCancelledError, LedgerError, NotFoundError, PullError
from pack_fetch.ledger import PullLedger
from pack_fetch.models import FetchOptions
from pack_fetch.policy import PolicyKind
from pack_fetch.progress import render_pull_stream
from pack_fetch.reference import ledger_key, translate_registry
from pack_fetch.utils import log_debug, log_warn, symbol


class ImageSource(str, Enum):
    LAYOUT = "layout"
    REGISTRY = "registry"
    DAEMON = "daemon"


def resolve_source(options: FetchOptions) -> ImageSource:
    """Pick the one source a fetch with *options* resolves against."""
    if options.layout_option.enabled:
        return ImageSource.LAYOUT
    if not options.daemon:
        return ImageSource.REGISTRY
    return ImageSource.DAEMON


def _check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise FetchCancelledError("image fetch cancelled")


class Fetcher:
    """Resolve images against the daemon, a registry or an OCI layout.

    Args:
        daemon: Daemon client used for lookups, pulls and layout export.
        ledger: Pull ledger; ``$PACK_HOME/image.json`` by default.
        registry_mirrors: Registry host (or ``*``) -> mirror host.
        keychain: Resolves registry credentials.
        out: Where pull progress is rendered; stdout by default.
    """

    def __init__(
        self,
        daemon: DaemonClient,
        *,
        ledger: PullLedger | None = None,
        registry_mirrors: dict[str, str] | None = None,
        keychain: Keychain = default_keychain,
        out: TextIO | None = None,
    ) -> None:
        self.daemon = daemon
        self.ledger = ledger if ledger is not None else PullLedger()
        self.registry_mirrors = dict(registry_mirrors or {})
        self.keychain = keychain
        self._out = out

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    def fetch(
        self,
        name: str,
        options: FetchOptions | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> ImageHandle:
        """Return a handle to *name*, pulling it first if the policy says so.

        Raises:
            NotFoundError: The image is absent where the policy allows looking.
            FetchCancelledError: *cancel* was set before or during a pull.
            FetchError: Any other lookup, pull or layout failure.
        """
        options = options or FetchOptions()
        _check_cancelled(cancel)

        key = ledger_key(name, self.registry_mirrors)
        name = translate_registry(name, self.registry_mirrors)

        source = resolve_source(options)
        if source is ImageSource.LAYOUT:
            return self._fetch_layout_image(name, options)
        if source is ImageSource.REGISTRY:
            return self._fetch_remote_image(name)

        policy = options.pull_policy
        if policy.kind is PolicyKind.NEVER:
            return self._fetch_daemon_image(name)

        if policy.kind is PolicyKind.IF_NOT_PRESENT:
            try:
                return self._fetch_daemon_image(name)
            except NotFoundError:
                pass
        elif policy.is_interval:
            if not self._pull_due(key, policy.duration):
                try:
                    return self._fetch_daemon_image(name)
                except NotFoundError:
                    self._evict(key)
                    raise
            self._prune()

        log_debug(f"Pulling image {symbol(name)}")
        self._pull_with_platform_fallback(name, options.platform, cancel)

        image = self._fetch_daemon_image(name)

        if policy.is_interval:
            self._record_pull(key)

        return image

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _fetch_daemon_image(self, name: str) -> ImageHandle:
        image = self.daemon.lookup_local(name)
        if not image.found:
            raise NotFoundError(f"image {name} does not exist on the daemon")
        return image

    def _fetch_remote_image(self, name: str) -> ImageHandle:
        auth = registry_auth(name, self.keychain)
        image = self.daemon.lookup_remote(name, registry_auth=auth)
        if not image.found:
            raise NotFoundError(f"image {name} does not exist in registry")
        return image

    def _fetch_layout_image(self, name: str, options: FetchOptions) -> ImageHandle:
        layout = options.layout_option
        auth = registry_auth(name, self.keychain)
        image = self.daemon.layout_image(
            name,
            path=layout.path,
            sparse=layout.sparse,
            registry_auth=auth,
            platform=options.platform,
        )
        image.save()
        return image

    # ------------------------------------------------------------------
    # Pulling
    # ------------------------------------------------------------------

    def _pull_image(self, name: str, platform: str, cancel: threading.Event | None) -> None:
        _check_cancelled(cancel)
        auth = registry_auth(name, self.keychain)
        stream = self.daemon.image_pull(name, registry_auth=auth, platform=platform)
        render_pull_stream(stream, self.out, cancel=cancel)

    def _pull_with_platform_fallback(
        self, name: str, platform: str, cancel: threading.Event | None
    ) -> None:
        # A NotFoundError is tolerated here: the lookup that follows the
        # pull reports the missing image.
        try:
            self._pull_image(name, platform, cancel)
        except NotFoundError as exc:
            log_debug(str(exc))
        except PullError as exc:
            # sample daemon error:
            # image with reference <image> was found but does not match the
            # specified platform: wanted linux/amd64, actual: linux
            if PLATFORM_MISMATCH_PHRASE not in str(exc):
                raise
            log_debug(f"Retrying pull of {name} without platform {platform!r}")
            try:
                self._pull_image(name, "", cancel)
            except NotFoundError as retry_exc:
                log_debug(str(retry_exc))

    # ------------------------------------------------------------------
    # Ledger bookkeeping
    # ------------------------------------------------------------------

    def _pull_due(self, key: str, interval: timedelta) -> bool:
        try:
            return self.ledger.check_interval(key, interval)
        except LedgerError as exc:
            log_warn(f"Failed to check pull interval for {key}, pulling: {exc}")
            return True

    def _prune(self) -> None:
        try:
            self.ledger.prune()
        except LedgerError as exc:
            log_warn(f"Failed to prune the image pull ledger: {exc}")

    def _evict(self, key: str) -> None:
        try:
            self.ledger.evict(key)
        except LedgerError as exc:
            log_warn(f"Failed to drop stale ledger entry for {key}: {exc}")

    def _record_pull(self, key: str) -> None:
        try:
            self.ledger.record_pull(key)
        except LedgerError as exc:
            log_warn(f"Failed to record pull of {key}: {exc}")
