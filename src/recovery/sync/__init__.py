"""Wearable sync infrastructure for the recovery engine.

Modules:
    policy — Staleness-driven sync policy (per-category fault isolation, in-flight dedup)
"""

from src.recovery.sync.policy import SyncOutcome, SyncPolicy

__all__ = ["SyncOutcome", "SyncPolicy"]
