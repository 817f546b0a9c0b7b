"""Exception hierarchy for pack-image-fetch.

Provides a structured exception tree so callers can catch broad
categories (``FetchError``) or specific failure modes.

This module is a base-layer module: it must NOT import from any
other ``pack_fetch`` submodule.
"""

from __future__ import annotations


class FetchError(Exception):
    """Base exception for all pack-image-fetch errors."""


class NotFoundError(FetchError):
    """The image does not exist in the source that was asked."""


class InvalidPolicyError(FetchError):
    """A pull policy expression is not part of the policy grammar."""


class InvalidFormatError(FetchError):
    """An interval specification does not match ``<n>d<n>h<n>m``."""


class LedgerError(FetchError):
    """Failures reading, writing or interpreting the pull ledger."""


class LedgerIOError(LedgerError):
    """The ledger file or its directory could not be read or written."""


class CorruptRecordError(LedgerError):
    """The ledger file is not valid JSON or does not match the schema."""


class LedgerParseError(LedgerError):
    """A stored interval spec or timestamp could not be parsed."""


class PullError(FetchError):
    """The daemon refused or failed an image pull."""


class FetchCancelledError(FetchError):
    """The caller cancelled the fetch while a pull was in flight."""


class InvalidReferenceError(FetchError):
    """An image name is not a valid ``[registry/]repository[:tag][@digest]``."""
