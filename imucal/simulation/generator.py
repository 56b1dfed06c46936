"""
Synthetic Multi-Position Sequence Generator

Produces the kind of log the multi-position calibration expects: the sensor
rests in a series of orientations, rotating from one to the next.

Each motion is a rotation about a fixed body axis with a smooth rate profile

    omega(t) = u * (2 * theta / T) * sin^2(pi * t / T),   0 <= t <= T

that starts and ends at rest. The sensor rotates about its own origin, so the
accelerometer only measures gravity (no linear acceleration).

Usage:
    from imucal.simulation import generate_multi_position_sequence

    seq = generate_multi_position_sequence(acc_model=TriadErrorModel(...), seed=1)
    calib.calibrate_acc_gyro(seq.acc_samples, seq.gyro_samples)
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from ..schema import TriadSample, samples_from_array
from .sensor_model import TriadErrorModel, TriadSimulator

# Roll, pitch, yaw (degrees, extrinsic xyz) of the default static positions
DEFAULT_POSITIONS_DEG = [
    (0, 0, 0), (90, 0, 0), (180, 0, 0), (-90, 0, 0),
    (-45, 60, 0), (0, 90, 30), (45, 45, 0), (135, 45, 0),
    (-135, 45, 0), (-45, -45, 0), (45, -45, 0), (135, -45, 0),
    (-135, -45, 0), (-20, -80, 10), (30, 60, 90), (-60, 20, 45)
]


@dataclass
class MultiPositionSequence:
    """A simulated calibration log with its ground truth."""
    acc_samples: List[TriadSample]
    gyro_samples: List[TriadSample]
    true_acc: np.ndarray          # (N, 3) specific force, m/s^2
    true_gyro: np.ndarray         # (N, 3) body rates, rad/s
    orientations: Rotation        # body-to-world rotation of each static position
    static_ranges: List[Tuple[int, int]]  # inclusive sample ranges of each position


def _motion_profile(rel_rotation: Rotation, num_samples: int,
                    dt: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Body rates and accumulated rotation vectors of the interior samples of
    one motion (the rest samples at both ends excluded).
    """
    rotvec = rel_rotation.as_rotvec()
    theta = np.linalg.norm(rotvec)
    axis = rotvec / theta if theta > 0 else np.array([0.0, 0.0, 1.0])

    n_steps = num_samples + 1
    duration = n_steps * dt
    t = np.arange(1, n_steps) * dt

    rate = (2 * theta / duration) * np.sin(np.pi * t / duration) ** 2
    angle = theta * (t / duration - np.sin(2 * np.pi * t / duration) / (2 * np.pi))

    return rate[:, None] * axis, angle[:, None] * axis


def generate_multi_position_sequence(
    acc_model: Optional[TriadErrorModel] = None,
    gyro_model: Optional[TriadErrorModel] = None,
    positions_deg: Optional[Sequence[Tuple[float, float, float]]] = None,
    sample_rate: float = 100.0,
    init_samples: int = 300,
    static_samples: int = 150,
    motion_samples: int = 100,
    gravity: float = 9.81744,
    tagged: bool = True,
    seed: Optional[int] = 0
) -> MultiPositionSequence:
    """
    Generate synchronized raw accelerometer and gyroscope logs.

    Args:
        acc_model: Accelerometer errors (ideal sensor if None)
        gyro_model: Gyroscope errors (ideal sensor if None)
        positions_deg: Static orientations as extrinsic xyz Euler angles
        sample_rate: Hz, shared by both sensors
        init_samples: Length of the first (initialization) static period
        static_samples: Length of the other static periods
        motion_samples: Samples recorded during each motion
        gravity: Gravity magnitude
        tagged: Tag static samples with their position index (-1 while
                moving). If False every sample is untagged.
        seed: Noise seed

    Returns:
        MultiPositionSequence
    """
    if positions_deg is None:
        positions_deg = DEFAULT_POSITIONS_DEG

    dt = 1.0 / sample_rate
    orientations = Rotation.from_euler('xyz', positions_deg, degrees=True)
    g_world = np.array([0.0, 0.0, gravity])

    acc_parts, gyro_parts, id_parts = [], [], []
    static_ranges = []
    n = 0

    for p in range(len(orientations)):
        length = init_samples if p == 0 else static_samples
        g_body = orientations[p].inv().apply(g_world)

        acc_parts.append(np.tile(g_body, (length, 1)))
        gyro_parts.append(np.zeros((length, 3)))
        id_parts.append(np.full(length, p if tagged else -1))
        static_ranges.append((n, n + length - 1))
        n += length

        if p == len(orientations) - 1:
            break

        rel = orientations[p].inv() * orientations[p + 1]
        rates, angles = _motion_profile(rel, motion_samples, dt)
        attitude = orientations[p] * Rotation.from_rotvec(angles)

        acc_parts.append(attitude.inv().apply(g_world))
        gyro_parts.append(rates)
        id_parts.append(np.full(len(rates), -1))
        n += len(rates)

    true_acc = np.vstack(acc_parts)
    true_gyro = np.vstack(gyro_parts)
    interval_ids = np.concatenate(id_parts)
    timestamps = np.arange(len(true_acc)) * dt

    seed_seq = np.random.SeedSequence(seed)
    acc_seed, gyro_seed = seed_seq.spawn(2)
    acc_raw = TriadSimulator(acc_model, seed=acc_seed).measure(true_acc)
    gyro_raw = TriadSimulator(gyro_model, seed=gyro_seed).measure(true_gyro)

    return MultiPositionSequence(
        acc_samples=samples_from_array(timestamps, acc_raw, interval_ids),
        gyro_samples=samples_from_array(timestamps, gyro_raw, interval_ids),
        true_acc=true_acc,
        true_gyro=true_gyro,
        orientations=orientations,
        static_ranges=static_ranges
    )
