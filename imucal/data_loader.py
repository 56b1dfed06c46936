"""
IMUCAL Data Loader

Reads and writes raw triad logs: one sample per row,

    timestamp x y z [ignored columns...]

space or comma separated, '#' starting a comment.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np

from .schema import TimestampUnit, TriadSample, samples_from_array, samples_timestamps, samples_to_array


def load_ascii_triad(filepath: Union[str, Path],
                     unit: TimestampUnit = TimestampUnit.SEC,
                     delimiter: Optional[str] = None) -> List[TriadSample]:
    """
    Load a timestamped triad log.

    Args:
        filepath: Path to the text file
        unit: Unit of the timestamp column, converted to seconds
        delimiter: Column separator. None detects ',' from the first data row,
                   whitespace otherwise.

    Returns:
        Untagged samples in file order
    """
    filepath = Path(filepath)
    if delimiter is None:
        delimiter = _detect_delimiter(filepath)

    data = np.loadtxt(filepath, delimiter=delimiter, comments='#', ndmin=2)
    if data.size == 0:
        return []
    if data.shape[1] < 4:
        raise ValueError(f"{filepath.name}: expected at least 4 columns "
                         f"(timestamp x y z), got {data.shape[1]}")

    return samples_from_array(data[:, 0] * unit.value, data[:, 1:4])


def save_ascii_triad(samples: Sequence[TriadSample],
                     filepath: Union[str, Path],
                     delimiter: str = ' '):
    """Write samples as timestamp x y z rows (timestamps in seconds)."""
    rows = np.column_stack([samples_timestamps(samples), samples_to_array(samples)])
    np.savetxt(filepath, rows, fmt='%.17g', delimiter=delimiter)


def _detect_delimiter(filepath: Path) -> Optional[str]:
    with open(filepath, 'r') as f:
        for line in f:
            line = line.split('#', 1)[0].strip()
            if line:
                return ',' if ',' in line else None
    return None
