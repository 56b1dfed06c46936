"""
Static Interval Detection

Provides:
- detect_static_intervals: group samples tagged with a static interval id
- detect_variance_intervals: classify static samples by sliding-window variance
- Interval statistics (mean, variance) and the per-interval reduction used by
  the multi-position calibration
"""

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .schema import DataInterval, TriadSample, samples_to_array

MIN_WIN_SIZE = 11


def detect_static_intervals(samples: Sequence[TriadSample],
                            on_interval: Optional[Callable[[DataInterval], None]] = None
                            ) -> List[DataInterval]:
    """
    Group consecutive samples sharing an interval id.

    Every sample must already carry a non-negative interval_id; untagged
    samples have to be filtered out by the caller.

    Args:
        samples: Tagged samples
        on_interval: Optional hook called with each emitted interval

    Returns:
        One DataInterval per maximal run of equal ids, in order. The last open
        interval is always emitted, so an empty input yields a single interval
        with both bounds at -1.
    """
    intervals = []

    def emit(interval: DataInterval):
        intervals.append(interval)
        if on_interval is not None:
            on_interval(interval)

    current = DataInterval(-1, -1)
    previous_id = -1

    for i, sample in enumerate(samples):
        if sample.interval_id < 0:
            raise ValueError(f"Negative interval id {sample.interval_id} at sample {i}")

        if sample.interval_id != previous_id:
            if current.start_idx != -1:
                emit(current)
            current = DataInterval(i, -1)
            previous_id = sample.interval_id

        if sample.interval_id == previous_id:
            current.end_idx = i

    emit(current)
    return intervals


def detect_variance_intervals(samples: Sequence[TriadSample],
                              threshold: float,
                              win_size: int = 101) -> List[DataInterval]:
    """
    Find static intervals as runs of low local variance.

    For every sample at least win_size // 2 samples away from both ends, the
    per-axis variance over the centered window is computed; the sample is
    static when the norm of that variance vector is below threshold.

    Args:
        samples: Raw samples
        threshold: Variance norm threshold
        win_size: Window length, forced odd and at least 11

    Returns:
        Static intervals in order; empty if the sequence is not longer than
        the window
    """
    win_size = max(win_size, MIN_WIN_SIZE)
    if win_size % 2 == 0:
        win_size += 1
    h = win_size // 2

    if win_size >= len(samples):
        return []

    data = samples_to_array(samples)
    # windows: (N - win_size + 1, 3, win_size), window k centered on sample k + h
    windows = sliding_window_view(data, win_size, axis=0)
    var_norm = np.linalg.norm(windows.var(axis=-1), axis=1)
    is_static = var_norm < threshold

    intervals = []
    start = None
    for k, static in enumerate(is_static):
        if static and start is None:
            start = k + h
        elif not static and start is not None:
            intervals.append(DataInterval(start, k + h - 1))
            start = None

    if start is not None:
        intervals.append(DataInterval(start, len(samples) - h - 1))

    return intervals


def tag_static_intervals(samples: Sequence[TriadSample],
                         intervals: Sequence[DataInterval]) -> List[TriadSample]:
    """
    Tag samples with the index of the interval containing them (-1 elsewhere).
    """
    ids = np.full(len(samples), -1, dtype=int)
    for interval_id, interval in enumerate(intervals):
        if interval.num_samples > 0:
            ids[interval.start_idx:interval.end_idx + 1] = interval_id

    return [s.with_interval_id(int(i)) for s, i in zip(samples, ids)]


def init_interval(samples: Sequence[TriadSample], num_samples: int) -> DataInterval:
    """Interval covering the first num_samples samples (clamped to the sequence)."""
    if len(samples) == 0:
        return DataInterval(-1, -1)
    return DataInterval(0, min(num_samples, len(samples)) - 1)


def data_mean(samples: Sequence[TriadSample], interval: DataInterval) -> np.ndarray:
    data = samples_to_array(samples[interval.start_idx:interval.end_idx + 1])
    return data.mean(axis=0)


def data_variance(samples: Sequence[TriadSample], interval: DataInterval) -> np.ndarray:
    """Per-axis (population) variance over the interval."""
    data = samples_to_array(samples[interval.start_idx:interval.end_idx + 1])
    return data.var(axis=0)


def data_norm_variance(samples: Sequence[TriadSample], interval: DataInterval) -> float:
    return float(np.linalg.norm(data_variance(samples, interval)))


def extract_interval_samples(samples: Sequence[TriadSample],
                             intervals: Sequence[DataInterval],
                             interval_num_samples: int,
                             use_means: bool = False
                             ) -> Tuple[List[TriadSample], List[DataInterval]]:
    """
    Reduce each static interval to one representative sample.

    Intervals shorter than interval_num_samples are discarded. For the others
    the centered window of interval_num_samples samples is reduced either to
    its mean (timestamped at the window center) or to its center sample.

    Args:
        samples: The sequence the intervals index into
        intervals: Static intervals
        interval_num_samples: Window length
        use_means: Mean of the window vs. its center sample

    Returns:
        (representative samples tagged with their position in the kept list,
         kept intervals)
    """
    extracted = []
    kept = []

    for interval in intervals:
        if interval.num_samples < interval_num_samples:
            continue

        start = interval.start_idx + (interval.num_samples - interval_num_samples) // 2
        window = DataInterval(start, start + interval_num_samples - 1)
        center = samples[start + interval_num_samples // 2]

        if use_means:
            representative = TriadSample(center.timestamp, data_mean(samples, window), len(kept))
        else:
            representative = TriadSample(center.timestamp, center.data, len(kept))

        extracted.append(representative)
        kept.append(interval)

    return extracted, kept
