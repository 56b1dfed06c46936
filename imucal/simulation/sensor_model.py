"""
Inertial Triad Sensor Simulation

Models the raw output of an accelerometer or gyroscope from the true
physical quantity, including misalignment, scale, bias and white noise.

The error model is described by the CalibratedTriad that undoes it, so a
perfect calibration of the simulated sensor recovers exactly that triad:

    raw = (T @ K)^-1 @ true + B + noise
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from ..calibration import CalibratedTriad


@dataclass
class TriadErrorModel:
    """Sensor errors, as the calibration correcting them."""
    calibration: CalibratedTriad = field(default_factory=CalibratedTriad)
    noise_std: float = 0.0             # white noise, raw units


class TriadSimulator:
    """
    Simulate raw triad readings.

    This class applies the inverse of the error model calibration to ideal
    values and adds Gaussian noise from a seeded generator, so sequences are
    reproducible.
    """

    def __init__(self, error_model: Optional[TriadErrorModel] = None, seed: Optional[int] = None):
        """
        Args:
            error_model: Sensor errors. If None, an ideal noiseless sensor.
            seed: Noise generator seed
        """
        self.error_model = error_model or TriadErrorModel()
        self._rng = np.random.default_rng(seed)

    def measure(self, true_values: np.ndarray, add_noise: bool = True) -> np.ndarray:
        """
        Args:
            true_values: (N, 3) ideal readings (m/s^2 or rad/s)
            add_noise: Add the model's white noise

        Returns:
            (N, 3) raw readings
        """
        calib = self.error_model.calibration
        true_values = np.atleast_2d(np.asarray(true_values, dtype=float))

        raw = np.linalg.solve(calib.ms_matrix, true_values.T).T + calib.bias_vector

        if add_noise and self.error_model.noise_std > 0:
            raw = raw + self._rng.normal(0.0, self.error_model.noise_std, size=raw.shape)

        return raw
