"""Decode raw detection-head tensors into candidate boxes.

Each output branch covers a ``grid_h`` x ``grid_w`` grid. The box tensor
holds ``4 * dfl_len`` distribution logits per cell, the score tensor one
score per class per cell, and the optional score-sum tensor one value per
cell that lets empty cells be skipped early.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from .quant import (
    compute_dfl,
    deqnt_affine_to_f32,
    qnt_f32_to_affine,
    qnt_f32_to_affine_u8,
)

OBJ_CLASS_NUM = 80


@dataclass(frozen=True)
class Candidate:
    """A decoded box in model-input pixels, before suppression."""

    x: float
    y: float
    w: float
    h: float
    prob: float
    cls_id: int


def _check_grid(grid_h: int, grid_w: int, dfl_len: int) -> None:
    if grid_h <= 0 or grid_w <= 0:
        raise ValueError("grid dimensions must be positive")
    if dfl_len <= 0:
        raise ValueError("dfl_len must be positive")


def _flat(tensor: Any, dtype: Any, size: int, name: str) -> np.ndarray:
    """Return the first ``size`` values of ``tensor`` as a flat array."""
    if isinstance(tensor, (bytes, bytearray, memoryview)):
        arr = np.frombuffer(tensor, dtype=dtype)
    else:
        arr = np.asarray(tensor).reshape(-1).astype(dtype)
    if arr.size < size:
        raise ValueError(f"{name} holds {arr.size} values, expected at least {size}")
    return arr[:size]


def _scan(
    grid_w: int,
    stride: int,
    dfl_len: int,
    cell_scores: np.ndarray,
    cell_boxes: np.ndarray,
    cell_sums: list | None,
    sum_thres: float,
    score_thres: float,
    init_max: float,
    to_prob: Callable[[Any], float],
) -> list[Candidate]:
    """Walk the cells in row-major order and keep those that pass."""
    sums = cell_sums if cell_sums is not None else itertools.repeat(None)
    found: list[Candidate] = []
    for offset, (scores, logits, total) in enumerate(
        zip(cell_scores.tolist(), cell_boxes, sums)
    ):
        if total is not None and total < sum_thres:
            continue
        max_score, max_cls = init_max, -1
        for cls_id, score in enumerate(scores):
            if score > score_thres and score > max_score:
                max_score, max_cls = score, cls_id
        if not max_score > score_thres:
            continue
        i, j = divmod(offset, grid_w)
        dist = compute_dfl(logits, dfl_len)
        x1 = (-float(dist[0]) + j + 0.5) * stride
        y1 = (-float(dist[1]) + i + 0.5) * stride
        x2 = (float(dist[2]) + j + 0.5) * stride
        y2 = (float(dist[3]) + i + 0.5) * stride
        found.append(
            Candidate(
                x=x1,
                y=y1,
                w=x2 - x1,
                h=y2 - y1,
                prob=float(to_prob(max_score)),
                cls_id=max_cls,
            )
        )
    return found


def _process_quant(
    dtype: Any,
    nhwc: bool,
    box_tensor: Any,
    box_zp: int,
    box_scale: float,
    score_tensor: Any,
    score_zp: int,
    score_scale: float,
    score_sum_tensor: Any,
    score_sum_zp: int,
    score_sum_scale: float,
    grid_h: int,
    grid_w: int,
    stride: int,
    dfl_len: int,
    threshold: float,
) -> list[Candidate]:
    _check_grid(grid_h, grid_w, dfl_len)
    grid_len = grid_h * grid_w
    box_len = 4 * dfl_len
    signed = np.dtype(dtype) == np.int8
    quantize = qnt_f32_to_affine if signed else qnt_f32_to_affine_u8

    raw_box = _flat(box_tensor, dtype, box_len * grid_len, "box_tensor")
    raw_score = _flat(score_tensor, dtype, OBJ_CLASS_NUM * grid_len, "score_tensor")
    if nhwc:
        raw_box = raw_box.reshape(grid_len, box_len)
        raw_score = raw_score.reshape(grid_len, OBJ_CLASS_NUM)
    else:
        raw_box = raw_box.reshape(box_len, grid_len).T
        raw_score = raw_score.reshape(OBJ_CLASS_NUM, grid_len).T
    boxes = (raw_box.astype(float) - box_zp) * box_scale

    sums = None
    sum_thres = 0
    if score_sum_tensor is not None:
        sums = _flat(score_sum_tensor, dtype, grid_len, "score_sum_tensor")
        sums = sums.astype(np.int64).tolist()
        sum_thres = quantize(threshold, score_sum_zp, score_sum_scale)

    if signed:
        init_max = ((-score_zp + 128) % 256) - 128
    else:
        init_max = (-score_zp) & 0xFF

    return _scan(
        grid_w,
        stride,
        dfl_len,
        raw_score.astype(np.int64),
        boxes,
        sums,
        sum_thres,
        quantize(threshold, score_zp, score_scale),
        init_max,
        lambda q: deqnt_affine_to_f32(q, score_zp, score_scale),
    )


def process_u8(
    box_tensor, box_zp, box_scale,
    score_tensor, score_zp, score_scale,
    score_sum_tensor, score_sum_zp, score_sum_scale,
    grid_h, grid_w, stride, dfl_len, threshold,
) -> list[Candidate]:
    """Decode one branch of unsigned 8-bit tensors in NCHW layout."""
    return _process_quant(
        np.uint8, False,
        box_tensor, box_zp, box_scale,
        score_tensor, score_zp, score_scale,
        score_sum_tensor, score_sum_zp, score_sum_scale,
        grid_h, grid_w, stride, dfl_len, threshold,
    )


def process_i8(
    box_tensor, box_zp, box_scale,
    score_tensor, score_zp, score_scale,
    score_sum_tensor, score_sum_zp, score_sum_scale,
    grid_h, grid_w, stride, dfl_len, threshold,
) -> list[Candidate]:
    """Decode one branch of signed 8-bit tensors in NCHW layout."""
    return _process_quant(
        np.int8, False,
        box_tensor, box_zp, box_scale,
        score_tensor, score_zp, score_scale,
        score_sum_tensor, score_sum_zp, score_sum_scale,
        grid_h, grid_w, stride, dfl_len, threshold,
    )


def process_i8_nhwc(
    box_tensor, box_zp, box_scale,
    score_tensor, score_zp, score_scale,
    score_sum_tensor, score_sum_zp, score_sum_scale,
    grid_h, grid_w, stride, dfl_len, threshold,
) -> list[Candidate]:
    """Decode one branch of signed 8-bit tensors in NHWC layout."""
    return _process_quant(
        np.int8, True,
        box_tensor, box_zp, box_scale,
        score_tensor, score_zp, score_scale,
        score_sum_tensor, score_sum_zp, score_sum_scale,
        grid_h, grid_w, stride, dfl_len, threshold,
    )


def process_fp32(
    box_tensor, score_tensor, score_sum_tensor,
    grid_h, grid_w, stride, dfl_len, threshold,
) -> list[Candidate]:
    """Decode one branch of float tensors in NCHW layout."""
    _check_grid(grid_h, grid_w, dfl_len)
    grid_len = grid_h * grid_w
    box_len = 4 * dfl_len
    boxes = _flat(box_tensor, float, box_len * grid_len, "box_tensor")
    scores = _flat(score_tensor, float, OBJ_CLASS_NUM * grid_len, "score_tensor")
    sums = None
    if score_sum_tensor is not None:
        sums = _flat(score_sum_tensor, float, grid_len, "score_sum_tensor").tolist()
    return _scan(
        grid_w,
        stride,
        dfl_len,
        scores.reshape(OBJ_CLASS_NUM, grid_len).T,
        boxes.reshape(box_len, grid_len).T,
        sums,
        threshold,
        threshold,
        0.0,
        float,
    )