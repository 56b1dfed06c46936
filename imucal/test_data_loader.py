"""
Tests for raw triad log import/export.
"""

import numpy as np
import pytest

from .data_loader import load_ascii_triad, save_ascii_triad
from .schema import TimestampUnit, samples_from_array


def test_space_separated(tmp_path):
    path = tmp_path / "acc.txt"
    path.write_text("0.00 0.1 0.2 9.8\n"
                    "0.01 0.2 0.3 9.7\n")

    samples = load_ascii_triad(path)

    assert len(samples) == 2
    assert samples[1].timestamp == pytest.approx(0.01)
    assert np.allclose(samples[1].data, [0.2, 0.3, 9.7])
    assert all(s.interval_id == -1 for s in samples)


def test_comma_separated_with_comments(tmp_path):
    path = tmp_path / "gyro.csv"
    path.write_text("# timestamp, gx, gy, gz\n"
                    "1.0, 0.01, -0.02, 0.03\n"
                    "1.5, 0.02, -0.01, 0.00  # moving\n")

    samples = load_ascii_triad(str(path))

    assert [s.timestamp for s in samples] == [1.0, 1.5]
    assert np.allclose(samples[0].data, [0.01, -0.02, 0.03])


def test_timestamp_unit(tmp_path):
    path = tmp_path / "acc.txt"
    path.write_text("1000000 0 0 9.8\n2500000 0 0 9.8\n")

    samples = load_ascii_triad(path, unit=TimestampUnit.USEC)

    assert [s.timestamp for s in samples] == pytest.approx([1.0, 2.5])
    assert TimestampUnit.from_name('usec') is TimestampUnit.USEC


def test_extra_columns_are_ignored(tmp_path):
    path = tmp_path / "imu.txt"
    path.write_text("0.0 1 2 3 25.5 7\n0.1 4 5 6 25.6 7\n")

    samples = load_ascii_triad(path)

    assert np.allclose(samples[1].data, [4, 5, 6])


def test_too_few_columns(tmp_path):
    path = tmp_path / "bad.txt"
    path.write_text("0.0 1 2\n0.1 4 5\n")

    with pytest.raises(ValueError, match="at least 4 columns"):
        load_ascii_triad(path)


def test_comment_only_file(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("# no data recorded\n")

    with pytest.warns(UserWarning):
        assert load_ascii_triad(path) == []


def test_save_load_round_trip(tmp_path):
    rng = np.random.default_rng(0)
    samples = samples_from_array(0.01 * np.arange(20), rng.normal(size=(20, 3)))
    path = tmp_path / "out.txt"

    save_ascii_triad(samples, path)
    loaded = load_ascii_triad(path)

    assert [s.timestamp for s in loaded] == [s.timestamp for s in samples]
    assert np.array_equal(np.vstack([s.data for s in loaded]), np.vstack([s.data for s in samples]))
