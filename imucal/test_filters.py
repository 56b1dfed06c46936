"""
Tests for static interval detection and interval statistics.
"""

import numpy as np
import pytest

from .filters import (
    data_mean,
    data_norm_variance,
    data_variance,
    detect_static_intervals,
    detect_variance_intervals,
    extract_interval_samples,
    init_interval,
    tag_static_intervals,
)
from .schema import DataInterval, TriadSample


def tagged_samples(ids):
    return [TriadSample(0.01 * i, np.array([float(i), 0.0, 1.0]), interval_id)
            for i, interval_id in enumerate(ids)]


def bounds(intervals):
    return [(iv.start_idx, iv.end_idx) for iv in intervals]


def static_motion_signal():
    """200 static, 100 moving, 200 static samples."""
    data = np.zeros((500, 3))
    data[200:300, 0] = 2.0 + np.sin(0.3 * np.arange(100))
    data[200:300, 1] = np.cos(0.2 * np.arange(100))
    return [TriadSample(0.01 * i, row) for i, row in enumerate(data)]


# -----------------------------------------------------------------------------
# Id-based detector
# -----------------------------------------------------------------------------

def test_runs_of_equal_ids():
    intervals = detect_static_intervals(tagged_samples([0, 0, 0, 1, 1, 2, 2, 2, 2]))
    assert bounds(intervals) == [(0, 2), (3, 4), (5, 8)]


def test_empty_input_yields_sentinel_interval():
    intervals = detect_static_intervals([])

    assert len(intervals) == 1
    assert intervals[0].is_open
    assert bounds(intervals) == [(-1, -1)]
    assert intervals[0].num_samples == 0


def test_single_sample():
    assert bounds(detect_static_intervals(tagged_samples([7]))) == [(0, 0)]


def test_repeated_id_after_change_opens_new_interval():
    intervals = detect_static_intervals(tagged_samples([3, 3, 5, 3, 3, 3]))
    assert bounds(intervals) == [(0, 1), (2, 2), (3, 5)]


def test_negative_id_is_rejected():
    with pytest.raises(ValueError):
        detect_static_intervals(tagged_samples([0, 0, -1, 1]))


def test_observer_hook_sees_every_interval():
    seen = []
    intervals = detect_static_intervals(tagged_samples([0, 0, 1, 2, 2]), on_interval=seen.append)

    assert bounds(seen) == bounds(intervals) == [(0, 1), (2, 2), (3, 4)]


def test_detection_is_deterministic():
    samples = tagged_samples([1, 1, 4, 4, 4, 0, 2, 2])
    assert bounds(detect_static_intervals(samples)) == bounds(detect_static_intervals(samples))


# -----------------------------------------------------------------------------
# Variance-based detector
# -----------------------------------------------------------------------------

def test_variance_detector_finds_rest_periods():
    intervals = detect_variance_intervals(static_motion_signal(), threshold=1e-6, win_size=21)
    assert bounds(intervals) == [(10, 189), (310, 489)]


def test_variance_detector_window_is_odd_and_bounded():
    samples = static_motion_signal()

    # 20 -> 21 and 4 -> 11
    assert bounds(detect_variance_intervals(samples, 1e-6, win_size=20)) == [(10, 189), (310, 489)]
    assert bounds(detect_variance_intervals(samples, 1e-6, win_size=4)) == [(5, 194), (305, 494)]


def test_variance_detector_short_sequence():
    assert detect_variance_intervals(static_motion_signal()[:50], 1e-6, win_size=101) == []


def test_variance_detector_threshold():
    # Nothing is below a zero threshold, everything is below a huge one
    samples = static_motion_signal()
    assert detect_variance_intervals(samples, 0.0, win_size=21) == []
    assert bounds(detect_variance_intervals(samples, 1e9, win_size=21)) == [(10, 489)]


def test_tag_static_intervals():
    samples = tagged_samples([-1] * 8)
    tagged = tag_static_intervals(samples, [DataInterval(1, 2), DataInterval(5, 6)])

    assert [s.interval_id for s in tagged] == [-1, 0, 0, -1, -1, 1, 1, -1]
    assert [s.interval_id for s in samples] == [-1] * 8
    assert bounds(detect_static_intervals([s for s in tagged if s.interval_id >= 0])) == [(0, 1), (2, 3)]


# -----------------------------------------------------------------------------
# Statistics and extraction
# -----------------------------------------------------------------------------

def test_init_interval_is_clamped():
    samples = tagged_samples([0] * 10)

    assert bounds([init_interval(samples, 4)]) == [(0, 3)]
    assert bounds([init_interval(samples, 100)]) == [(0, 9)]
    assert init_interval([], 5).is_open


def test_interval_statistics():
    samples = tagged_samples([0] * 10)
    interval = DataInterval(2, 5)

    assert np.allclose(data_mean(samples, interval), [3.5, 0.0, 1.0])
    assert np.allclose(data_variance(samples, interval), [1.25, 0.0, 0.0])
    assert data_norm_variance(samples, interval) == pytest.approx(1.25)


def test_extract_interval_means():
    samples = tagged_samples([0] * 30)
    intervals = [DataInterval(0, 9), DataInterval(12, 14), DataInterval(20, 29)]

    extracted, kept = extract_interval_samples(samples, intervals, interval_num_samples=4, use_means=True)

    # The 3-sample interval is too short
    assert bounds(kept) == [(0, 9), (20, 29)]
    assert [s.interval_id for s in extracted] == [0, 1]
    # Centered windows [3, 6] and [23, 26]
    assert np.allclose(extracted[0].data, [4.5, 0.0, 1.0])
    assert np.allclose(extracted[1].data, [24.5, 0.0, 1.0])


def test_extract_interval_center_sample():
    samples = tagged_samples([0] * 30)
    extracted, kept = extract_interval_samples(samples, [DataInterval(0, 9)],
                                               interval_num_samples=4, use_means=False)

    assert len(kept) == 1
    assert np.allclose(extracted[0].data, samples[5].data)
    assert extracted[0].timestamp == samples[5].timestamp
