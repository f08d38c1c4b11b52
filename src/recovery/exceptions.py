"""Exception types raised by the recovery engine."""

from __future__ import annotations


class RecoveryEngineError(Exception):
    """Base class for recovery engine errors."""


class PersistenceError(RecoveryEngineError):
    """A profile store or connection registry read/write failed.

    Surfaced to Facade callers as an explicit error state, since the engine
    can no longer guarantee a consistent record.
    """


class ProviderError(RecoveryEngineError):
    """A device data provider query failed.

    Caught per category by the sync policy; never reaches Facade callers.
    """
