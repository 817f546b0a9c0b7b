"""Unit tests for the exception hierarchy in pack_fetch.errors."""

import pytest

from pack_fetch.errors import (
    CorruptRecordError,
    FetchCancelledError,
    FetchError,
    InvalidFormatError,
    InvalidPolicyError,
    InvalidReferenceError,
    LedgerError,
    LedgerIOError,
    LedgerParseError,
    NotFoundError,
    PullError,
)

ALL_ERRORS = [
    NotFoundError,
    InvalidPolicyError,
    InvalidFormatError,
    InvalidReferenceError,
    LedgerError,
    LedgerIOError,
    CorruptRecordError,
    LedgerParseError,
    PullError,
    FetchCancelledError,
]


class TestExceptionHierarchy:
    """All concrete exceptions must be subclasses of FetchError."""

    @pytest.mark.parametrize("exc_cls", ALL_ERRORS)
    def test_subclass_of_fetch_error(self, exc_cls):
        assert issubclass(exc_cls, FetchError)

    @pytest.mark.parametrize("exc_cls", [LedgerIOError, CorruptRecordError, LedgerParseError])
    def test_ledger_errors_share_base(self, exc_cls):
        assert issubclass(exc_cls, LedgerError)

    def test_not_found_is_distinct_from_pull_error(self):
        assert not issubclass(NotFoundError, PullError)
        assert not issubclass(PullError, NotFoundError)

    @pytest.mark.parametrize("exc_cls", ALL_ERRORS)
    def test_message_preserved(self, exc_cls):
        assert str(exc_cls("something went wrong")) == "something went wrong"


class TestErrorFunctionalBehavior:
    def test_wrapped_not_found_still_matches(self):
        """A NotFoundError raised from a lower-level error keeps its identity."""
        with pytest.raises(NotFoundError) as exc_info:
            try:
                raise KeyError("busybox")
            except KeyError as e:
                raise NotFoundError("image busybox does not exist on the daemon") from e
        assert isinstance(exc_info.value.__cause__, KeyError)
