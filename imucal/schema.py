"""
IMUCAL Data Schema

Defines the sample and interval structures shared by the calibration pipeline.

A raw log is a list of TriadSample: one timestamped 3-axis reading, optionally
tagged with the id of the static interval it belongs to (-1 while moving).
"""

from enum import Enum
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import numpy as np


# =============================================================================
# ENUMS
# =============================================================================

class CalibrationState(str, Enum):
    """Progress of a single MultiPosCalibration call."""
    IDLE = "idle"
    INTERVALS_DETECTED = "intervals_detected"
    INITIAL_GUESS_BUILT = "initial_guess_built"
    OPTIMIZING = "optimizing"
    CONVERGED = "converged"
    FAILED = "failed"


class TimestampUnit(Enum):
    """Timestamp units found in raw logs, valued by their factor to seconds."""
    SEC = 1.0
    MSEC = 1e-3
    USEC = 1e-6
    NSEC = 1e-9

    @classmethod
    def from_name(cls, name: str) -> 'TimestampUnit':
        return cls[name.upper()]


# =============================================================================
# SAMPLES AND INTERVALS
# =============================================================================

@dataclass(frozen=True, eq=False)
class TriadSample:
    """
    One timestamped reading of a 3-axis sensor (accelerometer or gyroscope).

    interval_id is -1 when the sample is not assigned to a static interval.
    Samples are never modified in place; calibrated variants are new objects.
    """
    timestamp: float          # seconds, non-decreasing along a sequence
    data: np.ndarray          # (3,) raw sensor units
    interval_id: int = -1

    def __post_init__(self):
        data = np.asarray(self.data, dtype=float).reshape(-1)
        if data.shape != (3,):
            raise ValueError(f"TriadSample data must have 3 components, got {data.shape[0]}")
        object.__setattr__(self, 'data', data)

    @property
    def x(self) -> float:
        return float(self.data[0])

    @property
    def y(self) -> float:
        return float(self.data[1])

    @property
    def z(self) -> float:
        return float(self.data[2])

    def with_data(self, data: np.ndarray) -> 'TriadSample':
        """Same timestamp and interval id, new payload."""
        return replace(self, data=data)

    def with_interval_id(self, interval_id: int) -> 'TriadSample':
        return replace(self, interval_id=interval_id)

    def __repr__(self) -> str:
        return (f"TriadSample(t={self.timestamp:.6f}, "
                f"data=[{self.x:.6g}, {self.y:.6g}, {self.z:.6g}], id={self.interval_id})")


@dataclass
class DataInterval:
    """
    Inclusive range [start_idx, end_idx] of sample indices.

    -1 is the "not yet opened" sentinel for both bounds.
    """
    start_idx: int = -1
    end_idx: int = -1

    @property
    def is_open(self) -> bool:
        return self.start_idx == -1

    @property
    def num_samples(self) -> int:
        if self.start_idx < 0 or self.end_idx < self.start_idx:
            return 0
        return self.end_idx - self.start_idx + 1


# =============================================================================
# ARRAY HELPERS
# =============================================================================

def samples_to_array(samples: Sequence[TriadSample]) -> np.ndarray:
    """Stack sample payloads into an (N, 3) array."""
    if len(samples) == 0:
        return np.zeros((0, 3))
    return np.vstack([s.data for s in samples])


def samples_timestamps(samples: Sequence[TriadSample]) -> np.ndarray:
    return np.array([s.timestamp for s in samples], dtype=float)


def samples_from_array(timestamps: Sequence[float],
                       data: np.ndarray,
                       interval_ids: Optional[Sequence[int]] = None) -> List[TriadSample]:
    """
    Build a sample list from parallel arrays.

    Args:
        timestamps: (N,) times in seconds
        data: (N, 3) readings
        interval_ids: Optional (N,) ids; -1 for all samples if omitted

    Returns:
        List of N TriadSample
    """
    data = np.asarray(data, dtype=float)
    if data.ndim != 2 or data.shape[1] != 3:
        raise ValueError(f"data must be an (N, 3) array, got shape {data.shape}")
    if len(timestamps) != len(data):
        raise ValueError(f"Got {len(timestamps)} timestamps for {len(data)} readings")
    if interval_ids is None:
        interval_ids = [-1] * len(data)

    return [TriadSample(float(t), row, int(i))
            for t, row, i in zip(timestamps, data, interval_ids)]
