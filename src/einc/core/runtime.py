"""Operand capability used by generated kernels.

Kernels only query rank and per-axis sizes, read elements by full index,
multiply/add, and allocate zero-filled results through :func:`allocate`.
Labels reach these helpers in canonical form (``a``, ``b``, ...) together with
the caller's labels so failures name the index the user wrote.
"""

from __future__ import annotations

from itertools import product
from typing import Any, Dict, Sequence

import numpy as np

from .exceptions import ShapeMismatch


def _user_label(labels: str, canonical: str) -> str:
    pos = ord(canonical) - ord("a")
    if 0 <= pos < len(labels):
        return labels[pos]
    return canonical


def rank_of(operand: Any) -> int:
    ndim = getattr(operand, "ndim", None)
    if ndim is not None:
        return int(ndim)
    return len(operand.shape)


def check_rank(operand: Any, expected: int, name: str, group: str, labels: str) -> None:
    actual = rank_of(operand)
    if actual != expected:
        written = "".join(_user_label(labels, c) for c in group)
        raise ShapeMismatch(
            f"Operand {name} has {actual} axes but subscript '{written}' expects {expected}",
            expected=expected,
            actual=actual,
        )


def check_dim(
    labels: str, canonical: str, expected: int, actual: int, name: str, axis: int
) -> None:
    if expected != actual:
        label = _user_label(labels, canonical)
        raise ShapeMismatch(
            f"Size of index '{label}' disagrees: {expected} vs {actual} (axis {axis} of {name})",
            label=label,
            expected=int(expected),
            actual=int(actual),
        )


def allocate(shape: Sequence[int], *operands: Any) -> np.ndarray:
    dtype = np.result_type(*operands) if operands else np.float64
    return np.zeros(tuple(shape), dtype=dtype)


def kernel_namespace() -> Dict[str, Any]:
    """Globals visible to generated kernel source."""
    return {
        "_rank": check_rank,
        "_dim": check_dim,
        "_zeros": allocate,
        "_product": product,
    }
