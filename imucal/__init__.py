"""
IMUCAL - Multi-Position Inertial Sensor Calibration

Modules:
    schema - Samples, intervals and calibration states
    calibration - Misalignment/scale/bias triad model and its file format
    filters - Static interval detection
    integration - Gyroscope rate integration
    multi_pos_calibration - Accelerometer and gyroscope calibration
    data_loader - Raw triad log import/export
    calibrate - Command line driver
"""

from .schema import CalibrationState, DataInterval, TimestampUnit, TriadSample
from .calibration import CalibratedTriad
from .filters import detect_static_intervals, detect_variance_intervals
from .integration import integrate_gyro_interval
from .multi_pos_calibration import CalibrationConfig, MultiPosCalibration
from .data_loader import load_ascii_triad, save_ascii_triad

__all__ = [
    'CalibrationState',
    'DataInterval',
    'TimestampUnit',
    'TriadSample',
    'CalibratedTriad',
    'detect_static_intervals',
    'detect_variance_intervals',
    'integrate_gyro_interval',
    'CalibrationConfig',
    'MultiPosCalibration',
    'load_ascii_triad',
    'save_ascii_triad'
]
