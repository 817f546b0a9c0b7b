"""Unit tests for pack_fetch.policy."""

from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from pack_fetch.errors import InvalidFormatError, InvalidPolicyError, LedgerIOError
from pack_fetch.policy import (
    PULL_ALWAYS,
    PULL_DAILY,
    PULL_HOURLY,
    PULL_IF_NOT_PRESENT,
    PULL_NEVER,
    PULL_WEEKLY,
    PolicyKind,
    PullPolicy,
    parse_pull_policy,
)


class TestParsePullPolicy:
    """parse_pull_policy() covers the whole policy grammar."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("always", PULL_ALWAYS),
            ("", PULL_ALWAYS),
            ("never", PULL_NEVER),
            ("if-not-present", PULL_IF_NOT_PRESENT),
            ("hourly", PULL_HOURLY),
            ("daily", PULL_DAILY),
            ("weekly", PULL_WEEKLY),
        ],
    )
    def test_named_policies(self, text, expected):
        assert parse_pull_policy(text) == expected

    def test_interval_form(self):
        policy = parse_pull_policy("interval=2d12h")
        assert policy.kind is PolicyKind.INTERVAL
        assert policy.interval == "2d12h"
        assert policy.duration == timedelta(days=2, hours=12)

    def test_aliases_are_interval_policies(self):
        assert PULL_HOURLY.duration == timedelta(hours=1)
        assert PULL_DAILY.duration == timedelta(days=1)
        assert PULL_WEEKLY.duration == timedelta(days=7)
        assert all(p.is_interval for p in (PULL_HOURLY, PULL_DAILY, PULL_WEEKLY))

    def test_bad_interval_spec(self):
        with pytest.raises(InvalidFormatError):
            parse_pull_policy("interval=1h2d")

    def test_out_of_range_interval_rejected(self, ledger):
        with pytest.raises(InvalidFormatError, match="out of range"):
            parse_pull_policy("interval=9999999999d", ledger)
        assert not ledger.path.exists()

    @pytest.mark.parametrize("text", ["sometimes", "Always", "interval", "interval:1d", " never"])
    def test_unknown_policy(self, text):
        with pytest.raises(InvalidPolicyError):
            parse_pull_policy(text)

    def test_interval_persisted_to_ledger(self, ledger):
        parse_pull_policy("interval=3h", ledger)
        assert ledger.read().pulling_interval == "3h"

    def test_alias_persisted_to_ledger(self, ledger):
        parse_pull_policy("weekly", ledger)
        assert ledger.read().pulling_interval == "7d"

    def test_non_interval_leaves_ledger_untouched(self, ledger):
        parse_pull_policy("never", ledger)
        assert not ledger.path.exists()

    def test_ledger_failure_does_not_fail_parse(self):
        broken = MagicMock()
        broken.set_pulling_interval.side_effect = LedgerIOError("read-only")
        policy = parse_pull_policy("daily", broken)
        assert policy == PULL_DAILY


class TestPullPolicyRendering:
    """str() is the inverse of parse_pull_policy()."""

    @pytest.mark.parametrize(
        "text",
        ["always", "never", "if-not-present", "hourly", "daily", "weekly",
         "interval=1d", "interval=2d3h30m"],
    )
    def test_round_trip(self, text):
        assert str(parse_pull_policy(text)) == text

    def test_empty_renders_as_always(self):
        assert str(parse_pull_policy("")) == "always"

    def test_rendering_does_not_depend_on_last_parse(self):
        first = parse_pull_policy("interval=5m")
        parse_pull_policy("interval=9d")
        assert str(first) == "interval=5m"


class TestPullPolicyModel:
    def test_frozen(self):
        with pytest.raises(ValidationError):
            PULL_DAILY.interval = "2d"  # type: ignore[misc]

    def test_interval_validated_on_construction(self):
        with pytest.raises(ValidationError):
            PullPolicy.with_interval("5x")

    def test_out_of_range_interval_rejected_on_construction(self):
        with pytest.raises(ValidationError):
            PullPolicy.with_interval("9999999999d")

    def test_non_interval_kind_rejects_interval(self):
        with pytest.raises(ValidationError):
            PullPolicy(kind=PolicyKind.NEVER, interval="1d")

    def test_non_interval_duration_is_zero(self):
        assert PULL_ALWAYS.duration == timedelta(0)

    def test_serializes(self):
        data = json.loads(PULL_DAILY.model_dump_json())
        assert data == {"kind": "interval", "interval": "1d", "alias": "daily"}
