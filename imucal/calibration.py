"""
Inertial Triad Calibration Model

Corrects the three error sources of a 3-axis accelerometer or gyroscope:
1. Misalignment (non-orthogonal sensing axes)
2. Scale (per-axis sensitivity)
3. Bias (constant offset)

Calibration model:
    X' = T @ K @ (X - B)

Where:

        [    1     -mis_yz   mis_zy  ]        [ s_x   0    0  ]        [ b_x ]
    T = [  mis_xz     1     -mis_zx  ]    K = [  0   s_y   0  ]    B = [ b_y ]
        [ -mis_xy   mis_yx     1     ]        [  0    0   s_z ]        [ b_z ]

Without knowing the bias, the normalized reading is simply X'' = T @ K @ X.
"""

import logging
from typing import Sequence, Union

import numpy as np

from .schema import TriadSample

logger = logging.getLogger(__name__)

NUM_FILE_SCALARS = 21  # 3x3 misalignment + 3x3 scale + 3x1 bias

TriadInput = Union[np.ndarray, Sequence[float], TriadSample, Sequence[TriadSample]]


class CalibratedTriad:
    """
    Misalignment/scale/bias calibration of one sensor triad.

    The composed matrix M = T @ K is recomputed whenever a coefficient changes.
    The default triad is the identity transform.
    """

    def __init__(self,
                 mis_yz: float = 0.0, mis_zy: float = 0.0, mis_zx: float = 0.0,
                 mis_xz: float = 0.0, mis_xy: float = 0.0, mis_yx: float = 0.0,
                 s_x: float = 1.0, s_y: float = 1.0, s_z: float = 1.0,
                 b_x: float = 0.0, b_y: float = 0.0, b_z: float = 0.0):
        self._mis = np.array([mis_yz, mis_zy, mis_zx, mis_xz, mis_xy, mis_yx], dtype=float)
        self._scale = np.array([s_x, s_y, s_z], dtype=float)
        self._bias = np.array([b_x, b_y, b_z], dtype=float)
        self._update_matrices()

    def _update_matrices(self):
        mis_yz, mis_zy, mis_zx, mis_xz, mis_xy, mis_yx = self._mis

        self._mis_mat = np.array([
            [1.0,     -mis_yz,  mis_zy],
            [mis_xz,   1.0,    -mis_zx],
            [-mis_xy,  mis_yx,  1.0]
        ])
        self._scale_mat = np.diag(self._scale)
        self._ms_mat = self._mis_mat @ self._scale_mat

    # -------------------------------------------------------------------------
    # Coefficients
    # -------------------------------------------------------------------------

    @property
    def mis_yz(self) -> float:
        return float(self._mis[0])

    @property
    def mis_zy(self) -> float:
        return float(self._mis[1])

    @property
    def mis_zx(self) -> float:
        return float(self._mis[2])

    @property
    def mis_xz(self) -> float:
        return float(self._mis[3])

    @property
    def mis_xy(self) -> float:
        return float(self._mis[4])

    @property
    def mis_yx(self) -> float:
        return float(self._mis[5])

    @property
    def scale_x(self) -> float:
        return float(self._scale[0])

    @property
    def scale_y(self) -> float:
        return float(self._scale[1])

    @property
    def scale_z(self) -> float:
        return float(self._scale[2])

    @property
    def bias_x(self) -> float:
        return float(self._bias[0])

    @property
    def bias_y(self) -> float:
        return float(self._bias[1])

    @property
    def bias_z(self) -> float:
        return float(self._bias[2])

    @property
    def misalignment(self) -> np.ndarray:
        """[mis_yz, mis_zy, mis_zx, mis_xz, mis_xy, mis_yx]"""
        return self._mis.copy()

    @property
    def scale(self) -> np.ndarray:
        return self._scale.copy()

    @property
    def misalignment_matrix(self) -> np.ndarray:
        return self._mis_mat.copy()

    @property
    def scale_matrix(self) -> np.ndarray:
        return self._scale_mat.copy()

    @property
    def ms_matrix(self) -> np.ndarray:
        """Misalignment @ scale."""
        return self._ms_mat.copy()

    @property
    def bias_vector(self) -> np.ndarray:
        return self._bias.copy()

    def set_scale(self, s_vec: Sequence[float]):
        """Replace the diagonal of K; loaded off-diagonal terms and T are kept."""
        self._scale = _as_vector3(s_vec)
        self._scale_mat[np.diag_indices(3)] = self._scale
        self._ms_mat = self._mis_mat @ self._scale_mat

    def set_bias(self, b_vec: Sequence[float]):
        self._bias = _as_vector3(b_vec)

    # -------------------------------------------------------------------------
    # Correction
    # -------------------------------------------------------------------------

    def normalize(self, raw_data: TriadInput):
        """Apply misalignment and scale only: T @ K @ X."""
        return self._apply(raw_data, lambda x: x @ self._ms_mat.T)

    def unbias(self, raw_data: TriadInput):
        """
        Remove the bias only: X - B.

        Not idempotent: every call subtracts the bias again.
        """
        return self._apply(raw_data, lambda x: x - self._bias)

    def unbias_normalize(self, raw_data: TriadInput):
        """Full calibration: T @ K @ (X - B)."""
        return self._apply(raw_data, lambda x: (x - self._bias) @ self._ms_mat.T)

    def _apply(self, raw_data: TriadInput, transform):
        """
        Dispatch on the input kind.

        Vectors and (N, 3) arrays are transformed row-wise. Samples (single or
        sequence) come back as new samples with timestamp and interval id kept.
        """
        if isinstance(raw_data, TriadSample):
            return raw_data.with_data(transform(raw_data.data))

        if isinstance(raw_data, (list, tuple)) and (
                len(raw_data) == 0 or isinstance(raw_data[0], TriadSample)):
            if not raw_data:
                return []
            data = np.vstack([s.data for s in raw_data])
            out = transform(data)
            return [s.with_data(row) for s, row in zip(raw_data, out)]

        return transform(np.asarray(raw_data, dtype=float))

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self, filename: str) -> bool:
        """
        Load calibration from a plain-text file.

        The file holds 21 whitespace-separated scalars: the misalignment matrix
        (row-major), the scale matrix (row-major) and the bias vector. Line
        layout is irrelevant.

        Returns:
            False, leaving this triad untouched, if the file cannot be opened,
            holds a non-numeric token or has fewer than 21 scalars.
        """
        try:
            with open(filename, 'r') as f:
                tokens = f.read().split()
        except OSError as e:
            logger.warning(f"Failed to open calibration file {filename}: {e}")
            return False

        if len(tokens) < NUM_FILE_SCALARS:
            logger.warning(f"Calibration file {filename} holds {len(tokens)} scalars, "
                           f"expected {NUM_FILE_SCALARS}")
            return False

        try:
            values = np.array([float(t) for t in tokens[:NUM_FILE_SCALARS]])
        except ValueError as e:
            logger.warning(f"Malformed calibration file {filename}: {e}")
            return False

        mis_mat = values[0:9].reshape(3, 3)
        scale_mat = values[9:18].reshape(3, 3)
        bias = values[18:21]

        self._mis = np.array([
            -mis_mat[0, 1], mis_mat[0, 2], -mis_mat[1, 2],
            mis_mat[1, 0], -mis_mat[2, 0], mis_mat[2, 1]
        ])
        self._scale = np.diag(scale_mat).copy()
        self._bias = bias.copy()
        self._update_matrices()

        # Keep the matrices exactly as stored, off-diagonal scale terms included
        self._mis_mat = mis_mat.copy()
        self._scale_mat = scale_mat.copy()
        self._ms_mat = self._mis_mat @ self._scale_mat
        return True

    def save(self, filename: str) -> bool:
        """
        Save calibration as three blank-line separated blocks:
        misalignment (3x3), scale (3x3), bias (3x1).
        """
        try:
            with open(filename, 'w') as f:
                np.savetxt(f, self._mis_mat, fmt='%.17g')
                f.write('\n')
                np.savetxt(f, self._scale_mat, fmt='%.17g')
                f.write('\n')
                np.savetxt(f, self._bias.reshape(3, 1), fmt='%.17g')
                f.write('\n')
        except OSError as e:
            logger.warning(f"Failed to save calibration to {filename}: {e}")
            return False
        return True

    # -------------------------------------------------------------------------

    def allclose(self, other: 'CalibratedTriad', atol: float = 1e-9) -> bool:
        """Coefficient-wise comparison of the three blocks."""
        return (np.allclose(self._mis_mat, other._mis_mat, atol=atol) and
                np.allclose(self._scale_mat, other._scale_mat, atol=atol) and
                np.allclose(self._bias, other._bias, atol=atol))

    def copy(self) -> 'CalibratedTriad':
        triad = CalibratedTriad(*self._mis, *self._scale, *self._bias)
        triad._mis_mat = self._mis_mat.copy()
        triad._scale_mat = self._scale_mat.copy()
        triad._ms_mat = self._ms_mat.copy()
        return triad

    def __repr__(self) -> str:
        return (f"CalibratedTriad(mis={self._mis.tolist()}, "
                f"scale={self._scale.tolist()}, bias={self._bias.tolist()})")

    def __str__(self) -> str:
        return (f"Misalignment Matrix\n{self._mis_mat}\n"
                f"Scale Matrix\n{self._scale_mat}\n"
                f"Bias Vector\n{self._bias.reshape(3, 1)}")


def _as_vector3(values: Sequence[float]) -> np.ndarray:
    vec = np.asarray(values, dtype=float).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"Expected 3 components, got {vec.shape[0]}")
    return vec
