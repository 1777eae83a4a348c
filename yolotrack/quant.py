"""Activation, affine quantisation and distribution-focal-loss helpers."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np


def sigmoid(x: float) -> float:
    """Return the logistic function of ``x``."""
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


def unsigmoid(y: float) -> float:
    """Return the inverse of :func:`sigmoid`; ``y`` must lie in (0, 1)."""
    if not 0.0 < y < 1.0:
        raise ValueError("unsigmoid is defined only on the open interval (0, 1)")
    return -math.log(1.0 / y - 1.0)


def clip(val: float, low: float, high: float) -> int:
    """Clamp ``val`` to [low, high] and truncate it to an integer."""
    if val <= low:
        clamped = low
    elif val >= high:
        clamped = high
    else:
        clamped = val
    return int(clamped)


def qnt_f32_to_affine(f32: float, zp: int, scale: float) -> int:
    """Quantise a float to a signed 8-bit value."""
    return clip(f32 / scale + zp, -128, 127)


def qnt_f32_to_affine_u8(f32: float, zp: int, scale: float) -> int:
    """Quantise a float to an unsigned 8-bit value."""
    return clip(f32 / scale + zp, 0, 255)


def deqnt_affine_to_f32(qnt: int, zp: int, scale: float) -> float:
    """Turn a quantised value (signed or unsigned) back into a float."""
    return (float(qnt) - float(zp)) * scale


def compute_dfl(tensor: Sequence[float], dfl_len: int) -> np.ndarray:
    """Decode four box distances from ``4 * dfl_len`` logits.

    Each group of ``dfl_len`` logits is turned into a softmax and the
    expected bin index is returned.
    """
    if dfl_len <= 0:
        raise ValueError("dfl_len must be positive")
    values = np.asarray(tensor, dtype=float).reshape(-1)
    if values.size < 4 * dfl_len:
        raise ValueError("tensor holds fewer than 4 * dfl_len values")
    groups = values[: 4 * dfl_len].reshape(4, dfl_len)
    exp = np.exp(groups)
    weights = exp / exp.sum(axis=1, keepdims=True)
    return weights @ np.arange(dfl_len, dtype=float)