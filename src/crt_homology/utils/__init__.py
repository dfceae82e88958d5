"""Shared helpers."""

from .tensors import DTYPE, to_tensor

__all__ = ["DTYPE", "to_tensor"]
