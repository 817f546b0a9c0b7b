from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pack_fetch.constants import DEFAULT_PRUNING_INTERVAL
from pack_fetch.policy import PULL_ALWAYS, PullPolicy


class IntervalSettings(BaseModel):
    """The ``interval`` section of the pull ledger."""

    pulling_interval: str = ""
    """Interval spec of the interval policy most recently configured."""

    pruning_interval: str = DEFAULT_PRUNING_INTERVAL
    """Entries older than this are dropped when the ledger is pruned."""

    last_prune: str = ""
    """RFC 3339 timestamp of the last prune, empty if never pruned."""


class ImagePullTimes(BaseModel):
    """The ``image`` section of the pull ledger."""

    model_config = ConfigDict(populate_by_name=True)

    times: dict[str, str] = Field(default_factory=dict, alias="ImageIDtoTIME")
    """Ledger key -> RFC 3339 timestamp of the last successful pull."""

    @field_validator("times", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class LedgerRecord(BaseModel):
    """Pydantic model for the pull ledger (``image.json``).

    The on-disk layout nests the interval settings and the per-image map
    the way pack writes ``~/.pack/image.json``, so existing files load
    unchanged.
    """

    interval: IntervalSettings = Field(default_factory=IntervalSettings)
    image: ImagePullTimes = Field(default_factory=ImagePullTimes)

    @property
    def pulling_interval(self) -> str:
        return self.interval.pulling_interval

    @property
    def pruning_interval(self) -> str:
        return self.interval.pruning_interval

    @property
    def last_prune(self) -> str:
        return self.interval.last_prune

    @property
    def images(self) -> dict[str, str]:
        return self.image.times

    def to_json_dict(self) -> dict[str, Any]:
        """Serialise with the on-disk field names."""
        return self.model_dump(by_alias=True)


class LayoutOption(BaseModel):
    """Target of an OCI layout fetch. An empty path disables layout mode."""

    path: str = ""
    """Directory the OCI layout is written to."""

    sparse: bool = False
    """Write only the index and manifest, without layer blobs."""

    @property
    def enabled(self) -> bool:
        return bool(self.path)


class FetchOptions(BaseModel):
    """Options for a single ``Fetcher.fetch`` call."""

    daemon: bool = True
    """Resolve against the local daemon (True) or the registry (False)."""

    platform: str = ""
    """Platform constraint such as ``linux/amd64``; empty for the daemon default."""

    pull_policy: PullPolicy = PULL_ALWAYS
    """Policy applied when resolving against the daemon."""

    layout_option: LayoutOption = Field(default_factory=LayoutOption)
    """Non-empty path switches to OCI layout mode."""
