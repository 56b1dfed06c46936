"""
Angular Rate Integration

Integrates calibrated gyroscope rates over a motion segment into the rotation
accumulated by the sensor body.
"""

from typing import Optional, Sequence

import numpy as np
from scipy.spatial.transform import Rotation


def integrate_gyro_interval(rates: np.ndarray,
                            dt: Optional[float] = None,
                            timestamps: Optional[Sequence[float]] = None) -> Rotation:
    """
    Integrate body-frame angular rates into an accumulated rotation.

    Each step between consecutive samples rotates by the average of the two
    rates times the step duration; steps compose in the body frame.

    Args:
        rates: (N, 3) angular rates in rad/s, in time order
        dt: Fixed sampling period in seconds. Used when positive.
        timestamps: (N,) sample times, used when dt is not given

    Returns:
        Rotation from the final body frame to the initial one, i.e. a vector
        v expressed in the initial frame reads R.inv().apply(v) at the end.
        Identity for fewer than two samples.
    """
    rates = np.asarray(rates, dtype=float)
    if rates.ndim != 2 or rates.shape[1] != 3:
        raise ValueError(f"rates must be an (N, 3) array, got shape {rates.shape}")

    if len(rates) < 2:
        return Rotation.identity()

    if dt is not None and dt > 0:
        steps = np.full(len(rates) - 1, float(dt))
    elif timestamps is not None:
        timestamps = np.asarray(timestamps, dtype=float)
        if len(timestamps) != len(rates):
            raise ValueError(f"Got {len(timestamps)} timestamps for {len(rates)} rates")
        steps = np.diff(timestamps)
    else:
        raise ValueError("Either a positive dt or the sample timestamps are required")

    increments = Rotation.from_rotvec(0.5 * (rates[:-1] + rates[1:]) * steps[:, None])

    rotation = Rotation.identity()
    for k in range(len(increments)):
        rotation = rotation * increments[k]

    return rotation
