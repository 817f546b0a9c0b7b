"""Pull policies: when to go to the network before using a daemon image.

A policy is a pure value. Interval-style policies carry their own interval
spec, so rendering never depends on which expression was parsed last.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, model_validator

from pack_fetch.constants import INTERVAL_PREFIX, POLICY_ALIASES
from pack_fetch.duration import is_valid_interval, parse_interval
from pack_fetch.errors import InvalidPolicyError, LedgerError
from pack_fetch.utils import log_warn

if TYPE_CHECKING:
    from pack_fetch.ledger import PullLedger


class PolicyKind(str, Enum):
    ALWAYS = "always"
    NEVER = "never"
    IF_NOT_PRESENT = "if-not-present"
    INTERVAL = "interval"


class PullPolicy(BaseModel):
    """A parsed pull policy.

    ``interval`` is set only for ``PolicyKind.INTERVAL``. ``alias`` records
    ``hourly``/``daily``/``weekly`` when the policy was written that way.
    """

    model_config = ConfigDict(frozen=True)

    kind: PolicyKind = PolicyKind.ALWAYS
    interval: str = ""
    alias: str = ""

    @model_validator(mode="after")
    def _check_interval(self) -> "PullPolicy":
        if self.kind is PolicyKind.INTERVAL:
            if not is_valid_interval(self.interval):
                raise ValueError(f"invalid interval format: {self.interval!r}")
        elif self.interval or self.alias:
            raise ValueError(f"{self.kind.value} policy takes no interval")
        return self

    @classmethod
    def with_interval(cls, spec: str, *, alias: str = "") -> "PullPolicy":
        return cls(kind=PolicyKind.INTERVAL, interval=spec, alias=alias)

    @property
    def is_interval(self) -> bool:
        return self.kind is PolicyKind.INTERVAL

    @property
    def duration(self) -> timedelta:
        """The pulling interval of an interval policy, zero otherwise."""
        if not self.is_interval:
            return timedelta(0)
        return parse_interval(self.interval)

    def __str__(self) -> str:
        if self.kind is PolicyKind.INTERVAL:
            return self.alias or f"{INTERVAL_PREFIX}{self.interval}"
        return self.kind.value


PULL_ALWAYS = PullPolicy(kind=PolicyKind.ALWAYS)
PULL_NEVER = PullPolicy(kind=PolicyKind.NEVER)
PULL_IF_NOT_PRESENT = PullPolicy(kind=PolicyKind.IF_NOT_PRESENT)
PULL_HOURLY = PullPolicy.with_interval(POLICY_ALIASES["hourly"], alias="hourly")
PULL_DAILY = PullPolicy.with_interval(POLICY_ALIASES["daily"], alias="daily")
PULL_WEEKLY = PullPolicy.with_interval(POLICY_ALIASES["weekly"], alias="weekly")

_NAMED_POLICIES: dict[str, PullPolicy] = {
    "": PULL_ALWAYS,
    "always": PULL_ALWAYS,
    "never": PULL_NEVER,
    "if-not-present": PULL_IF_NOT_PRESENT,
    "hourly": PULL_HOURLY,
    "daily": PULL_DAILY,
    "weekly": PULL_WEEKLY,
}


def parse_pull_policy(text: str, ledger: PullLedger | None = None) -> PullPolicy:
    """Parse a policy expression.

    Accepts ``always``, ``never``, ``if-not-present``, the empty string
    (``always``), ``hourly``, ``daily``, ``weekly`` and ``interval=<spec>``.
    When *ledger* is given, the interval of an interval-style policy is
    persisted as the ledger's pulling interval. Failing to persist it is
    logged and does not fail the parse.

    Raises:
        InvalidFormatError: ``interval=<spec>`` with a malformed or
            out-of-range spec.
        InvalidPolicyError: Anything outside the policy grammar.
    """
    policy = _NAMED_POLICIES.get(text)

    if policy is None:
        if not text.startswith(INTERVAL_PREFIX):
            raise InvalidPolicyError(f"invalid pull policy {text!r}")
        spec = text[len(INTERVAL_PREFIX):]
        parse_interval(spec)
        policy = PullPolicy.with_interval(spec)

    if policy.is_interval and ledger is not None:
        try:
            ledger.set_pulling_interval(policy.interval)
        except LedgerError as exc:
            log_warn(f"Failed to record pulling interval {policy.interval!r}: {exc}")

    return policy
