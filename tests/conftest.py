"""
Top-level pytest conftest.py -- shared fixtures.

Provides:
    now          - the fixed instant every ledger clock returns
    pack_home    - temporary PACK_HOME, also exported in the environment
    ledger       - PullLedger in pack_home with a frozen clock
    fake_daemon  - in-memory DaemonClient
    fetcher      - Fetcher wired to ledger and fake_daemon, progress captured
"""

from __future__ import annotations

import io
from datetime import datetime, timezone

import pytest

from pack_fetch.fetcher import Fetcher
from pack_fetch.ledger import PullLedger
from tests.mocks import FakeDaemon

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def anonymous_keychain(registry):
    return None


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def pack_home(tmp_path, monkeypatch):
    """Point PACK_HOME at a fresh temporary directory."""
    home = tmp_path / "pack-home"
    monkeypatch.setenv("PACK_HOME", str(home))
    return home


@pytest.fixture
def ledger(pack_home):
    return PullLedger(pack_home / "image.json", clock=lambda: NOW)


@pytest.fixture
def fake_daemon():
    return FakeDaemon()


@pytest.fixture
def progress_out():
    return io.StringIO()


@pytest.fixture
def fetcher(fake_daemon, ledger, progress_out):
    return Fetcher(
        fake_daemon,
        ledger=ledger,
        keychain=anonymous_keychain,
        out=progress_out,
    )
