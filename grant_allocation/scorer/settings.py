"""Allocation settings configuration system.

Pacing tolerances, reserve policy, history window and batch sizes are
externalized here and can be loaded from JSON or YAML.
"""

import json
import yaml
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, field_validator


class AllocationSettings(BaseModel):
    """Tunable constants for profile building, scoring and batching."""

    allocation_history_window_days: int = 30
    allow_expired_grants: bool = False

    # Pacing (linear spend target curve)
    underspend_tolerance_pct: float = 15.0
    overspend_tolerance_pct: float = 10.0

    # Reserves
    min_remaining_buffer_pct: float = 10.0
    buffer_release_days_before_end: int = 45

    # Batching
    recommendation_batch_size: int = 30
    save_batch_size: int = 50

    version: str = "1.0"

    @field_validator('underspend_tolerance_pct', 'overspend_tolerance_pct',
                     'min_remaining_buffer_pct')
    @classmethod
    def pct_range(cls, v: float) -> float:
        """Ensure percentages are between 0 and 100."""
        if not 0 <= v <= 100:
            raise ValueError(f"Percentage must be between 0 and 100, got {v}")
        return v

    @field_validator('allocation_history_window_days', 'buffer_release_days_before_end')
    @classmethod
    def non_negative_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Day counts must be non-negative, got {v}")
        return v

    @field_validator('recommendation_batch_size', 'save_batch_size')
    @classmethod
    def positive_batch(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Batch sizes must be at least 1, got {v}")
        return v

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return self.model_dump()


DEFAULT_SETTINGS = AllocationSettings()


def load_settings(filepath: Optional[str] = None) -> AllocationSettings:
    """Load allocation settings from file or return defaults.

    Supports JSON and YAML formats.

    Args:
        filepath: Optional path to settings file

    Returns:
        AllocationSettings instance

    Raises:
        FileNotFoundError: If filepath provided but doesn't exist
        ValueError: If settings are invalid
    """

    if not filepath:
        return DEFAULT_SETTINGS

    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {filepath}")

    if path.suffix == '.json':
        with open(path, 'r') as f:
            data = json.load(f)
    elif path.suffix in ['.yaml', '.yml']:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    else:
        raise ValueError(f"Unsupported file format: {path.suffix}. Use .json, .yaml, or .yml")

    return AllocationSettings(**(data or {}))


def save_settings(settings: AllocationSettings, filepath: str) -> None:
    """Save allocation settings to file (extension determines format)."""

    path = Path(filepath)
    data = settings.to_dict()

    if path.suffix == '.json':
        with open(path, 'w') as f:
            json.dump(data, f, indent=2)
    elif path.suffix in ['.yaml', '.yml']:
        with open(path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False)
    else:
        raise ValueError(f"Unsupported file format: {path.suffix}")
