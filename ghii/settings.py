"""
Engine settings for Ghii.

Settings tune engine behavior, not the application configuration the
engine manages. They are read once from the environment:

    GHII_WAIT_TIMEOUT    seconds wait_for_first_snapshot waits by default (30)
    GHII_LOADER_POLICY   "strict" or "partial" (strict)
"""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field


class LoaderPolicy(str, Enum):
    """How a snapshot treats failed loaders."""

    STRICT = "strict"  # Any loader failure fails the snapshot
    PARTIAL = "partial"  # Merge only the loaders that succeeded


class GhiiSettings(BaseModel):
    """
    Engine settings model.

    A value of 0 or below for wait_timeout disables the rendezvous timeout.
    """

    model_config = ConfigDict(frozen=True)

    wait_timeout: float = Field(30.0, description="Default rendezvous timeout in seconds")
    loader_policy: LoaderPolicy = Field(
        LoaderPolicy.STRICT, description="Failure policy applied to every snapshot"
    )


@lru_cache()
def get_settings() -> GhiiSettings:
    """
    Get engine settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return GhiiSettings(
        wait_timeout=os.getenv("GHII_WAIT_TIMEOUT", "30"),
        loader_policy=os.getenv("GHII_LOADER_POLICY", "strict").lower(),
    )
