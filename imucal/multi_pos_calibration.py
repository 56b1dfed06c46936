"""
Multi-Position Accelerometer and Gyroscope Calibration

Calibrates an accelerometer (and optionally a gyroscope) without external
reference equipment, from a log where the sensor is held still in several
orientations connected by motion.

Accelerometer: at rest the calibrated reading must have gravity magnitude,
whatever the orientation. One residual per static interval:

    r_i = ||T @ K @ (a_i - B)|| - g

Gyroscope: integrating the calibrated rates across the motion between two
static intervals must rotate the gravity direction measured by the
(calibrated) accelerometer in the first interval onto the one measured in the
second. Three residuals per motion segment:

    r_i = R_i^T @ g_i - g_{i+1}

Both problems are solved with Levenberg-Marquardt (scipy least_squares).
"""

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import least_squares

from .calibration import CalibratedTriad
from .filters import (
    data_mean,
    data_norm_variance,
    detect_static_intervals,
    detect_variance_intervals,
    extract_interval_samples,
    init_interval,
)
from .integration import integrate_gyro_interval
from .schema import (
    CalibrationState,
    DataInterval,
    TriadSample,
    samples_timestamps,
    samples_to_array,
)

logger = logging.getLogger(__name__)

MIN_NUM_INTERVALS = 12  # 9 accelerometer unknowns plus slack
DEFAULT_THRESHOLD_MULTIPLIERS = (2, 3, 4, 5, 6, 7, 8, 9, 10)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class CalibrationConfig:
    """Settings of one MultiPosCalibration instance."""
    gravity_magnitude: float = 9.81744        # m/s^2
    num_init_samples: int = 3000              # leading samples with the device at rest
    interval_num_samples: int = 100           # samples per static interval window
    acc_use_means: bool = False               # window mean vs. window center sample
    gyro_dt: Optional[float] = None           # s; None (or <= 0) uses timestamps
    optimize_gyro_bias: bool = False
    optimize_acc_bias: bool = True
    static_win_size: int = 101                # variance classifier window
    threshold_multipliers: Tuple[float, ...] = DEFAULT_THRESHOLD_MULTIPLIERS
    max_iterations: int = 200
    tolerance: float = 1e-10
    verbose: bool = False

    def __post_init__(self):
        if self.gravity_magnitude <= 0:
            raise ValueError(f"gravity_magnitude must be positive, got {self.gravity_magnitude}")
        if self.num_init_samples < 1:
            raise ValueError(f"num_init_samples must be at least 1, got {self.num_init_samples}")
        if self.interval_num_samples < 1:
            raise ValueError(f"interval_num_samples must be at least 1, got {self.interval_num_samples}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if not self.threshold_multipliers:
            raise ValueError("threshold_multipliers must not be empty")
        self.threshold_multipliers = tuple(self.threshold_multipliers)

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['threshold_multipliers'] = list(self.threshold_multipliers)
        return d

    @classmethod
    def from_dict(cls, d: Dict) -> 'CalibrationConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(d) - known
        if unknown:
            raise ValueError(f"Unknown calibration settings: {sorted(unknown)}")
        return cls(**d)


def load_config(filepath: str) -> CalibrationConfig:
    with open(filepath, 'r') as f:
        return CalibrationConfig.from_dict(json.load(f))


def save_config(config: CalibrationConfig, filepath: str):
    with open(filepath, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)


# =============================================================================
# PARAMETER VECTOR
# =============================================================================
# [mis_yz, mis_zy, mis_zx, mis_xz, mis_xy, mis_yx, s_x, s_y, s_z (, b_x, b_y, b_z)]

def triad_to_params(triad: CalibratedTriad, with_bias: bool) -> np.ndarray:
    blocks = [triad.misalignment, triad.scale]
    if with_bias:
        blocks.append(triad.bias_vector)
    return np.concatenate(blocks)


def params_to_triad(params: np.ndarray, fixed_bias: Optional[np.ndarray] = None) -> CalibratedTriad:
    """Triad from a 9 (bias held at fixed_bias) or 12 element parameter vector."""
    bias = params[9:12] if len(params) == 12 else fixed_bias
    return CalibratedTriad(*params[0:6], *params[6:9], *bias)


def _acc_residuals(params: np.ndarray, means: np.ndarray,
                   fixed_bias: np.ndarray, g_mag: float) -> np.ndarray:
    triad = params_to_triad(params, fixed_bias)
    return np.linalg.norm(triad.unbias_normalize(means), axis=1) - g_mag


def _acc_jacobian(params: np.ndarray, means: np.ndarray,
                  fixed_bias: np.ndarray, g_mag: float) -> np.ndarray:
    """
    Analytic Jacobian of _acc_residuals.

    With v = a - B, y = M @ v and u = y / ||y||:
        dr/dM[j, k] = u_j * v_k,   M[j, k] = T[j, k] * s_k
    """
    triad = params_to_triad(params, fixed_bias)
    T = triad.misalignment_matrix
    M = triad.ms_matrix
    s_x, s_y, s_z = triad.scale

    v = means - triad.bias_vector
    y = v @ M.T
    u = y / np.linalg.norm(y, axis=1, keepdims=True)

    jac = np.empty((len(means), len(params)))
    jac[:, 0] = -u[:, 0] * v[:, 1] * s_y    # mis_yz: M[0, 1] = -mis_yz * s_y
    jac[:, 1] = u[:, 0] * v[:, 2] * s_z     # mis_zy: M[0, 2] =  mis_zy * s_z
    jac[:, 2] = -u[:, 1] * v[:, 2] * s_z    # mis_zx: M[1, 2] = -mis_zx * s_z
    jac[:, 3] = u[:, 1] * v[:, 0] * s_x     # mis_xz: M[1, 0] =  mis_xz * s_x
    jac[:, 4] = -u[:, 2] * v[:, 0] * s_x    # mis_xy: M[2, 0] = -mis_xy * s_x
    jac[:, 5] = u[:, 2] * v[:, 1] * s_y     # mis_yx: M[2, 1] =  mis_yx * s_y
    jac[:, 6:9] = (u @ T) * v
    if len(params) == 12:
        jac[:, 9:12] = -(u @ M)
    return jac


def _gyro_residuals(params: np.ndarray, segments: List[Tuple], fixed_bias: np.ndarray,
                    dt: Optional[float]) -> np.ndarray:
    triad = params_to_triad(params, fixed_bias)
    residuals = []
    for rates, timestamps, g_versor0, g_versor1 in segments:
        rotation = integrate_gyro_interval(triad.unbias_normalize(rates), dt=dt, timestamps=timestamps)
        residuals.append(rotation.inv().apply(g_versor0) - g_versor1)
    return np.concatenate(residuals)


def _solver_converged(result) -> bool:
    # status 0: max_nfev reached, -1: improper input
    return result.status > 0 and bool(np.all(np.isfinite(result.x)))


@dataclass
class _TriadFit:
    calibration: CalibratedTriad
    cost: float
    intervals: List[DataInterval]


# =============================================================================
# CALIBRATION
# =============================================================================

class MultiPosCalibration:
    """
    Multi-position calibration of an accelerometer and a gyroscope triad.

    Results are only replaced by a successful call. A single instance must not
    be used by several callers at once.
    """

    def __init__(self, config: Optional[CalibrationConfig] = None):
        self.config = config or CalibrationConfig()

        self._init_acc_calib = CalibratedTriad()
        self._init_gyro_calib = CalibratedTriad()

        self._acc_calib = CalibratedTriad()
        self._gyro_calib = CalibratedTriad()
        self._calib_acc_samples: List[TriadSample] = []
        self._calib_gyro_samples: List[TriadSample] = []
        self._static_intervals: List[DataInterval] = []

        self._state = CalibrationState.IDLE

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def _update_config(self, **changes):
        self.config = replace(self.config, **changes)

    @property
    def gravity_magnitude(self) -> float:
        return self.config.gravity_magnitude

    @gravity_magnitude.setter
    def gravity_magnitude(self, g: float):
        self._update_config(gravity_magnitude=g)

    @property
    def min_num_intervals(self) -> int:
        return MIN_NUM_INTERVALS

    @property
    def num_init_samples(self) -> int:
        return self.config.num_init_samples

    @num_init_samples.setter
    def num_init_samples(self, num: int):
        self._update_config(num_init_samples=num)

    @property
    def interval_num_samples(self) -> int:
        return self.config.interval_num_samples

    @interval_num_samples.setter
    def interval_num_samples(self, num: int):
        self._update_config(interval_num_samples=num)

    @property
    def acc_use_means(self) -> bool:
        return self.config.acc_use_means

    @acc_use_means.setter
    def acc_use_means(self, enabled: bool):
        self._update_config(acc_use_means=enabled)

    @property
    def gyro_dt(self) -> Optional[float]:
        return self.config.gyro_dt

    @gyro_dt.setter
    def gyro_dt(self, dt: Optional[float]):
        self._update_config(gyro_dt=dt)

    @property
    def optimize_gyro_bias(self) -> bool:
        return self.config.optimize_gyro_bias

    @optimize_gyro_bias.setter
    def optimize_gyro_bias(self, enabled: bool):
        self._update_config(optimize_gyro_bias=enabled)

    @property
    def optimize_acc_bias(self) -> bool:
        return self.config.optimize_acc_bias

    @optimize_acc_bias.setter
    def optimize_acc_bias(self, enabled: bool):
        self._update_config(optimize_acc_bias=enabled)

    @property
    def static_win_size(self) -> int:
        return self.config.static_win_size

    @static_win_size.setter
    def static_win_size(self, size: int):
        self._update_config(static_win_size=size)

    @property
    def threshold_multipliers(self) -> Tuple[float, ...]:
        return self.config.threshold_multipliers

    @threshold_multipliers.setter
    def threshold_multipliers(self, multipliers: Sequence[float]):
        self._update_config(threshold_multipliers=tuple(multipliers))

    @property
    def max_iterations(self) -> int:
        return self.config.max_iterations

    @max_iterations.setter
    def max_iterations(self, num: int):
        self._update_config(max_iterations=num)

    @property
    def tolerance(self) -> float:
        return self.config.tolerance

    @tolerance.setter
    def tolerance(self, tol: float):
        self._update_config(tolerance=tol)

    @property
    def verbose(self) -> bool:
        return self.config.verbose

    @verbose.setter
    def verbose(self, enabled: bool):
        self._update_config(verbose=enabled)

    @property
    def init_acc_calibration(self) -> CalibratedTriad:
        return self._init_acc_calib.copy()

    @init_acc_calibration.setter
    def init_acc_calibration(self, init_calib: CalibratedTriad):
        self._init_acc_calib = init_calib.copy()

    @property
    def init_gyro_calibration(self) -> CalibratedTriad:
        return self._init_gyro_calib.copy()

    @init_gyro_calibration.setter
    def init_gyro_calibration(self, init_calib: CalibratedTriad):
        self._init_gyro_calib = init_calib.copy()

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    @property
    def acc_calibration(self) -> CalibratedTriad:
        return self._acc_calib.copy()

    @property
    def gyro_calibration(self) -> CalibratedTriad:
        return self._gyro_calib.copy()

    @property
    def calibrated_acc_samples(self) -> List[TriadSample]:
        return list(self._calib_acc_samples)

    @property
    def calibrated_gyro_samples(self) -> List[TriadSample]:
        return list(self._calib_gyro_samples)

    @property
    def static_intervals(self) -> List[DataInterval]:
        """Static intervals used by the last successful accelerometer fit."""
        return [DataInterval(i.start_idx, i.end_idx) for i in self._static_intervals]

    @property
    def state(self) -> CalibrationState:
        return self._state

    # -------------------------------------------------------------------------
    # Public calls
    # -------------------------------------------------------------------------

    def calibrate_acc(self, acc_samples: Sequence[TriadSample]) -> bool:
        """
        Calibrate the accelerometer alone.

        Args:
            acc_samples: Raw accelerometer samples. If any sample carries an
                interval id, the tags define the static intervals; otherwise
                they are found with the variance classifier.

        The initial guess, bias included, is init_acc_calibration (zero bias
        by default), never the average of the first samples, which holds
        gravity.

        Returns:
            True on convergence. On failure the stored results are unchanged.
        """
        self._state = CalibrationState.IDLE
        acc_samples = list(acc_samples)

        acc_fit = self._fit_acc(acc_samples)
        if acc_fit is None:
            self._state = CalibrationState.FAILED
            return False

        self._acc_calib = acc_fit.calibration
        self._calib_acc_samples = acc_fit.calibration.unbias_normalize(acc_samples)
        self._static_intervals = acc_fit.intervals
        self._state = CalibrationState.CONVERGED
        return True

    def calibrate_acc_gyro(self, acc_samples: Sequence[TriadSample],
                           gyro_samples: Sequence[TriadSample]) -> bool:
        """
        Calibrate the accelerometer, then the gyroscope against it.

        Both streams must share the same clock; the gyroscope samples covering
        each motion segment are located by timestamp.

        Returns:
            True if both fits converged. Results are committed only then.
        """
        self._state = CalibrationState.IDLE
        acc_samples = list(acc_samples)
        gyro_samples = list(gyro_samples)

        acc_fit = self._fit_acc(acc_samples)
        if acc_fit is None:
            self._state = CalibrationState.FAILED
            return False

        calib_acc_samples = acc_fit.calibration.unbias_normalize(acc_samples)

        gyro_fit = self._fit_gyro(acc_fit, calib_acc_samples, gyro_samples)
        if gyro_fit is None:
            self._state = CalibrationState.FAILED
            return False

        self._acc_calib = acc_fit.calibration
        self._calib_acc_samples = calib_acc_samples
        self._static_intervals = acc_fit.intervals
        self._gyro_calib = gyro_fit.calibration
        self._calib_gyro_samples = gyro_fit.calibration.unbias_normalize(gyro_samples)
        self._state = CalibrationState.CONVERGED
        return True

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _report(self, msg: str):
        logger.log(logging.INFO if self.config.verbose else logging.DEBUG, msg)

    def _candidate_intervals(self, samples: List[TriadSample]) -> List[List[DataInterval]]:
        """One interval set from the tags, or one per variance threshold."""
        tagged_idx = [i for i, s in enumerate(samples) if s.interval_id >= 0]

        if tagged_idx:
            tagged = [samples[i] for i in tagged_idx]
            intervals = [DataInterval(tagged_idx[iv.start_idx], tagged_idx[iv.end_idx])
                         for iv in detect_static_intervals(tagged)
                         if not iv.is_open]
            self._report(f"{len(intervals)} tagged static intervals")
            return [intervals]

        init_var = data_norm_variance(samples, init_interval(samples, self.config.num_init_samples))
        self._report(f"Initial static variance norm: {init_var:.6g}")

        candidates = []
        for multiplier in self.config.threshold_multipliers:
            intervals = detect_variance_intervals(samples, multiplier * init_var,
                                                  self.config.static_win_size)
            self._report(f"Threshold x{multiplier}: {len(intervals)} static intervals")
            candidates.append(intervals)
        return candidates

    def _fit_acc(self, samples: List[TriadSample]) -> Optional[_TriadFit]:
        cfg = self.config

        if not samples:
            logger.warning("Accelerometer calibration failed: no samples")
            return None

        candidates = self._candidate_intervals(samples)
        self._state = CalibrationState.INTERVALS_DETECTED

        init_triad = self._init_acc_calib
        fixed_bias = init_triad.bias_vector
        x0 = triad_to_params(init_triad, cfg.optimize_acc_bias)
        self._state = CalibrationState.INITIAL_GUESS_BUILT
        best = None

        for intervals in candidates:
            static_samples, kept = extract_interval_samples(
                samples, intervals, cfg.interval_num_samples, cfg.acc_use_means)

            if len(kept) < MIN_NUM_INTERVALS:
                self._report(f"Skipping interval set: {len(kept)} usable intervals, "
                             f"at least {MIN_NUM_INTERVALS} required")
                continue

            means = np.vstack([s.data for s in static_samples])
            self._state = CalibrationState.OPTIMIZING
            result = least_squares(
                _acc_residuals, x0, jac=_acc_jacobian, method='lm',
                args=(means, fixed_bias, cfg.gravity_magnitude),
                ftol=cfg.tolerance, xtol=cfg.tolerance, gtol=cfg.tolerance,
                max_nfev=cfg.max_iterations)

            if not _solver_converged(result):
                self._report(f"Accelerometer solver did not converge: {result.message}")
                continue

            self._report(f"Accelerometer fit on {len(kept)} intervals: cost={result.cost:.6g}, "
                         f"nfev={result.nfev}")

            if best is None or result.cost < best.cost:
                best = _TriadFit(params_to_triad(result.x, fixed_bias), float(result.cost), kept)

        if best is None:
            logger.warning("Accelerometer calibration failed: no interval set with "
                           f"{MIN_NUM_INTERVALS} usable static intervals converged")
            return None

        self._report(f"Accelerometer calibration:\n{best.calibration}")
        return best

    def _fit_gyro(self, acc_fit: _TriadFit, calib_acc_samples: List[TriadSample],
                  gyro_samples: List[TriadSample]) -> Optional[_TriadFit]:
        cfg = self.config

        if len(gyro_samples) < 2:
            logger.warning("Gyroscope calibration failed: not enough samples")
            return None

        acc_means, _ = extract_interval_samples(
            calib_acc_samples, acc_fit.intervals, cfg.interval_num_samples, use_means=True)
        g_versors = [s.data / np.linalg.norm(s.data) for s in acc_means]

        gyro_ts = samples_timestamps(gyro_samples)
        gyro_data = samples_to_array(gyro_samples)

        segments = []
        for i in range(len(acc_fit.intervals) - 1):
            ts0 = calib_acc_samples[acc_fit.intervals[i].end_idx].timestamp
            ts1 = calib_acc_samples[acc_fit.intervals[i + 1].start_idx].timestamp

            idx0 = int(np.searchsorted(gyro_ts, ts0, side='left'))
            idx1 = min(int(np.searchsorted(gyro_ts, ts1, side='left')), len(gyro_ts) - 1)
            if idx1 <= idx0:
                self._report(f"No gyroscope data between static intervals {i} and {i + 1}")
                continue

            segments.append((gyro_data[idx0:idx1 + 1], gyro_ts[idx0:idx1 + 1],
                             g_versors[i], g_versors[i + 1]))

        init_triad = self._init_gyro_calib.copy()
        init_triad.set_bias(data_mean(gyro_samples, init_interval(gyro_samples, cfg.num_init_samples)))
        fixed_bias = init_triad.bias_vector
        x0 = triad_to_params(init_triad, cfg.optimize_gyro_bias)
        self._state = CalibrationState.INITIAL_GUESS_BUILT

        if 3 * len(segments) < len(x0):
            logger.warning(f"Gyroscope calibration failed: {len(segments)} motion segments "
                           f"for {len(x0)} unknowns")
            return None

        self._report(f"Gyroscope initial bias: {fixed_bias}")
        dt = cfg.gyro_dt if cfg.gyro_dt is not None and cfg.gyro_dt > 0 else None

        self._state = CalibrationState.OPTIMIZING
        result = least_squares(
            _gyro_residuals, x0, method='lm',
            args=(segments, fixed_bias, dt),
            ftol=cfg.tolerance, xtol=cfg.tolerance, gtol=cfg.tolerance,
            max_nfev=cfg.max_iterations * (len(x0) + 1))

        if not _solver_converged(result):
            logger.warning(f"Gyroscope calibration failed: {result.message}")
            return None

        calibration = params_to_triad(result.x, fixed_bias)
        self._report(f"Gyroscope fit on {len(segments)} segments: cost={result.cost:.6g}, "
                     f"nfev={result.nfev}")
        self._report(f"Gyroscope calibration:\n{calibration}")
        return _TriadFit(calibration, float(result.cost), acc_fit.intervals)
