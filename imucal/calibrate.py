#!/usr/bin/env python3
"""
Multi-Position IMU Calibration

Calibrates an accelerometer, and optionally a gyroscope, from raw logs
recorded while the device rests in at least 12 orientations connected by
motion, the first rest lasting a few tens of seconds.

Usage:
    imucal-calibrate acc.txt gyro.txt --acc-out acc.calib --gyro-out gyro.calib
    imucal-calibrate acc.txt --timestamp-unit usec --use-means --verbose
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from .data_loader import load_ascii_triad
from .multi_pos_calibration import CalibrationConfig, MultiPosCalibration, load_config
from .schema import TimestampUnit


def build_config(args: argparse.Namespace) -> CalibrationConfig:
    """Config file first, command line overrides on top."""
    config = load_config(args.config) if args.config else CalibrationConfig()
    overrides = {}

    if args.gravity is not None:
        overrides['gravity_magnitude'] = args.gravity
    if args.gyro_dt is not None:
        overrides['gyro_dt'] = args.gyro_dt
    if args.init_samples is not None:
        overrides['num_init_samples'] = args.init_samples
    if args.interval_samples is not None:
        overrides['interval_num_samples'] = args.interval_samples
    if args.use_means:
        overrides['acc_use_means'] = True
    if args.optimize_gyro_bias:
        overrides['optimize_gyro_bias'] = True
    if args.verbose:
        overrides['verbose'] = True

    return CalibrationConfig.from_dict({**config.to_dict(), **overrides})


def print_triad(name: str, calib):
    print(f"   {name} misalignment matrix:")
    for row in calib.misalignment_matrix:
        print(f"      [{row[0]:10.6f}, {row[1]:10.6f}, {row[2]:10.6f}]")
    print(f"   {name} scale: [{calib.scale_x:.6f}, {calib.scale_y:.6f}, {calib.scale_z:.6f}]")
    print(f"   {name} bias:  [{calib.bias_x:.6f}, {calib.bias_y:.6f}, {calib.bias_z:.6f}]")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Multi-position accelerometer/gyroscope calibration")
    parser.add_argument('acc_file', type=Path, help='Accelerometer log (timestamp ax ay az)')
    parser.add_argument('gyro_file', type=Path, nargs='?', help='Gyroscope log (timestamp gx gy gz)')
    parser.add_argument('--acc-out', type=Path, default=Path('acc.calib'),
                        help='Accelerometer calibration output (default: acc.calib)')
    parser.add_argument('--gyro-out', type=Path, default=Path('gyro.calib'),
                        help='Gyroscope calibration output (default: gyro.calib)')
    parser.add_argument('--config', type=Path, help='JSON calibration settings')
    parser.add_argument('--timestamp-unit', choices=[u.name.lower() for u in TimestampUnit],
                        default='sec', help='Unit of the timestamp column')
    parser.add_argument('--gravity', type=float, help='Local gravity magnitude (m/s^2)')
    parser.add_argument('--gyro-dt', type=float, help='Gyroscope sampling period (s)')
    parser.add_argument('--init-samples', type=int, help='Leading samples with the device at rest')
    parser.add_argument('--interval-samples', type=int, help='Samples per static interval window')
    parser.add_argument('--use-means', action='store_true',
                        help='Reduce static intervals to their mean')
    parser.add_argument('--optimize-gyro-bias', action='store_true',
                        help='Estimate the gyroscope bias in the optimization')
    parser.add_argument('--verbose', '-v', action='store_true', help='Report progress')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}")
        return 1

    unit = TimestampUnit.from_name(args.timestamp_unit)

    print(f"\n{'='*60}")
    print("Multi-Position IMU Calibration")
    print(f"{'='*60}")

    print(f"\n1. Loading {args.acc_file.name}...")
    acc_samples = load_ascii_triad(args.acc_file, unit=unit)
    print(f"   Loaded {len(acc_samples)} accelerometer samples")

    gyro_samples = None
    if args.gyro_file is not None:
        print(f"   Loading {args.gyro_file.name}...")
        gyro_samples = load_ascii_triad(args.gyro_file, unit=unit)
        print(f"   Loaded {len(gyro_samples)} gyroscope samples")

    calib = MultiPosCalibration(config)

    print("\n2. Calibrating...")
    if gyro_samples is None:
        ok = calib.calibrate_acc(acc_samples)
    else:
        ok = calib.calibrate_acc_gyro(acc_samples, gyro_samples)

    if not ok:
        print("   Calibration failed")
        return 1

    print(f"   Converged on {len(calib.static_intervals)} static intervals")
    print_triad("Acc", calib.acc_calibration)

    magnitudes = np.linalg.norm(
        np.vstack([s.data for s in calib.calibrated_acc_samples]), axis=1)
    print(f"   Calibrated acc magnitude: {np.mean(magnitudes):.4f} ± {np.std(magnitudes):.4f}")

    if gyro_samples is not None:
        print_triad("Gyro", calib.gyro_calibration)

    print("\n3. Saving...")
    if not calib.acc_calibration.save(str(args.acc_out)):
        print(f"   Could not write {args.acc_out}")
        return 1
    print(f"   Saved {args.acc_out}")

    if gyro_samples is not None:
        if not calib.gyro_calibration.save(str(args.gyro_out)):
            print(f"   Could not write {args.gyro_out}")
            return 1
        print(f"   Saved {args.gyro_out}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
