"""
Inertial Sensor Simulation Module

Synthetic multi-position logs with known sensor errors, for validating the
calibration pipeline without hardware.

Usage:
    from imucal.simulation import TriadErrorModel, generate_multi_position_sequence

    acc_model = TriadErrorModel(CalibratedTriad(s_x=1.02, b_x=0.1), noise_std=0.01)
    seq = generate_multi_position_sequence(acc_model=acc_model, seed=1)
"""

from .sensor_model import TriadErrorModel, TriadSimulator
from .generator import (
    DEFAULT_POSITIONS_DEG,
    MultiPositionSequence,
    generate_multi_position_sequence,
)

__all__ = [
    'TriadErrorModel',
    'TriadSimulator',
    'DEFAULT_POSITIONS_DEG',
    'MultiPositionSequence',
    'generate_multi_position_sequence'
]
