"""Status classification for a single observation."""

from __future__ import annotations

from typing import Optional

from .models import Observation, StatusVerdict


def classify(observation: Observation) -> Optional[StatusVerdict]:
    """Return ``down``, ``up`` or ``None`` for an observation.

    Down dominates up. An observation with zero up and zero down counters
    gets no verdict; the pair stays unresolved and is reported pending.
    """
    if observation.down > 0:
        return StatusVerdict.DOWN
    if observation.up > 0:
        return StatusVerdict.UP
    return None


def status_key(config_id: str, location: str) -> str:
    """Report key for a (config id, location) pair."""
    return f"{config_id}-{location}"
