"""
Tests for the calibration command line driver.
"""

import argparse
import json

import numpy as np
import pytest

from .calibrate import build_config, main
from .calibration import CalibratedTriad
from .data_loader import save_ascii_triad
from .simulation import DEFAULT_POSITIONS_DEG, TriadErrorModel, generate_multi_position_sequence

ACC_ERRORS = CalibratedTriad(0.004, -0.006, 0.003, -0.002, 0.005, 0.001,
                             1.02, 0.98, 1.01,
                             0.12, -0.2, 0.15)
GYRO_ERRORS = CalibratedTriad(s_x=0.97, s_y=1.03, s_z=1.05, b_x=0.02, b_y=-0.01, b_z=0.015)


def write_logs(tmp_path, positions_deg=None):
    seq = generate_multi_position_sequence(
        acc_model=TriadErrorModel(ACC_ERRORS, noise_std=0.01),
        gyro_model=TriadErrorModel(GYRO_ERRORS, noise_std=0.001),
        positions_deg=positions_deg,
        init_samples=400, static_samples=250, tagged=False, seed=11)

    acc_file = tmp_path / "acc.txt"
    gyro_file = tmp_path / "gyro.txt"
    save_ascii_triad(seq.acc_samples, acc_file)
    save_ascii_triad(seq.gyro_samples, gyro_file)
    return acc_file, gyro_file


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        'num_init_samples': 300,
        'interval_num_samples': 50,
        'static_win_size': 51,
        'acc_use_means': True
    }))
    return path


def test_acc_and_gyro(tmp_path, config_file, capsys):
    acc_file, gyro_file = write_logs(tmp_path)
    acc_out = tmp_path / "acc.calib"
    gyro_out = tmp_path / "gyro.calib"

    code = main([str(acc_file), str(gyro_file), '--config', str(config_file),
                 '--acc-out', str(acc_out), '--gyro-out', str(gyro_out)])

    assert code == 0
    assert "Converged on" in capsys.readouterr().out

    acc = CalibratedTriad()
    gyro = CalibratedTriad()
    assert acc.load(str(acc_out))
    assert gyro.load(str(gyro_out))
    assert np.allclose(acc.bias_vector, ACC_ERRORS.bias_vector, atol=0.02)
    assert np.allclose(gyro.bias_vector, GYRO_ERRORS.bias_vector, atol=1e-3)


def test_acc_only(tmp_path, config_file):
    acc_file, _ = write_logs(tmp_path)
    acc_out = tmp_path / "acc.calib"
    gyro_out = tmp_path / "gyro.calib"

    code = main([str(acc_file), '--config', str(config_file), '--use-means', '--verbose',
                 '--acc-out', str(acc_out), '--gyro-out', str(gyro_out)])

    assert code == 0
    assert acc_out.exists()
    assert not gyro_out.exists()


def test_too_few_positions(tmp_path, config_file, capsys):
    acc_file, _ = write_logs(tmp_path, positions_deg=DEFAULT_POSITIONS_DEG[:6])
    acc_out = tmp_path / "acc.calib"

    code = main([str(acc_file), '--config', str(config_file), '--acc-out', str(acc_out)])

    assert code == 1
    assert "Calibration failed" in capsys.readouterr().out
    assert not acc_out.exists()


def test_invalid_config(tmp_path, capsys):
    acc_file, _ = write_logs(tmp_path)
    bad_config = tmp_path / "bad.json"
    bad_config.write_text(json.dumps({'gravity': 9.8}))

    assert main([str(acc_file), '--config', str(bad_config)]) == 1
    assert "Invalid configuration" in capsys.readouterr().out


def test_command_line_overrides(tmp_path, config_file):
    args = argparse.Namespace(config=config_file, gravity=9.80665, gyro_dt=0.01,
                              init_samples=None, interval_samples=80, use_means=False,
                              optimize_gyro_bias=True, verbose=False)

    config = build_config(args)

    assert config.gravity_magnitude == 9.80665
    assert config.gyro_dt == 0.01
    assert config.num_init_samples == 300
    assert config.interval_num_samples == 80
    assert config.acc_use_means
    assert config.optimize_gyro_bias
