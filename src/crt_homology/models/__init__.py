"""
CRT-Homology Models: Homology-regularized sequence stacks.

This module provides a ready-to-use stack of CRT-fused attention blocks
whose homology loss can be added to any task loss.
"""

from .regularized import HomologyRegularizedBlock, HomologyRegularizedModel

__all__ = ["HomologyRegularizedBlock", "HomologyRegularizedModel"]
