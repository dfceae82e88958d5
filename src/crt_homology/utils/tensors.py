"""
Input coercion shared by the engine.

Callers may pass Python sequences, NumPy arrays or torch tensors. Everything
is converted to float64 tensors so that residue arithmetic stays exact enough
for integrality checks and results are reproducible across calls.
"""

import numpy as np
import torch

from ..core.errors import DimensionMismatchError

DTYPE = torch.float64


def to_tensor(values) -> torch.Tensor:
    """
    Convert array-like input to a float64 tensor.

    Tensors are cast without copying when already float64, so autograd
    graphs attached to them are preserved.

    Raises:
        DimensionMismatchError: Ragged nested sequences
    """
    if isinstance(values, torch.Tensor):
        return values.to(DTYPE)
    if isinstance(values, (list, tuple)) and any(isinstance(v, torch.Tensor) for v in values):
        rows = [to_tensor(v) for v in values]
        if len({r.shape for r in rows}) > 1:
            raise DimensionMismatchError(
                f"Rows have different shapes: {sorted({tuple(r.shape) for r in rows})}"
            )
        return torch.stack(rows)
    try:
        array = np.asarray(values, dtype=np.float64)
    except ValueError as exc:
        raise DimensionMismatchError(f"Input is ragged or not numeric: {exc}") from exc
    return torch.as_tensor(array)
