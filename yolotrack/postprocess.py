"""Turn detection-head outputs into final, suppressed and rescaled boxes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Sequence

from .decode import (
    OBJ_CLASS_NUM,
    Candidate,
    process_fp32,
    process_i8,
    process_i8_nhwc,
    process_u8,
)

OBJ_NAME_MAX_SIZE = 64
OBJ_NUMB_MAX_SIZE = 128
NMS_THRESH = 0.45
BOX_THRESH = 0.25
NULL_LABEL = "null"


class OutputFormat(Enum):
    """Element type and layout of a quantised branch."""

    INT8 = "i8"
    UINT8 = "u8"
    INT8_NHWC = "i8_nhwc"


@dataclass(frozen=True)
class BoxRect:
    """A box in source-image pixels."""

    left: int
    top: int
    right: int
    bottom: int


@dataclass(frozen=True)
class DetectResult:
    """One final detection."""

    box: BoxRect
    prop: float
    cls_id: int


@dataclass(frozen=True)
class Letterbox:
    """How the source image was scaled and padded into the model input."""

    scale: float = 1.0
    x_pad: int = 0
    y_pad: int = 0


@dataclass(frozen=True, eq=False)
class Branch:
    """The tensors and quantisation parameters of one output branch."""

    box: Any
    score: Any
    grid_h: int
    grid_w: int
    dfl_len: int
    score_sum: Any = None
    box_zp: int = 0
    box_scale: float = 1.0
    score_zp: int = 0
    score_scale: float = 1.0
    score_sum_zp: int = 0
    score_sum_scale: float = 1.0
    output_format: OutputFormat = OutputFormat.INT8


@dataclass(frozen=True)
class LabelTable:
    """Class names, one per class id."""

    labels: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def load(cls, path: str | Path) -> "LabelTable":
        """Read up to one name per line for each class id."""
        with open(path, encoding="utf-8", errors="replace", newline="") as fh:
            text = fh.read()
        lines = text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        return cls(tuple(lines[:OBJ_CLASS_NUM]))

    def name(self, cls_id: int) -> str:
        """Return the name of ``cls_id``, or "null" when there is none."""
        if 0 <= cls_id < min(len(self.labels), OBJ_CLASS_NUM):
            return self.labels[cls_id]
        return NULL_LABEL


def calculate_overlap(
    xmin0: float, ymin0: float, xmax0: float, ymax0: float,
    xmin1: float, ymin1: float, xmax1: float, ymax1: float,
) -> float:
    """Return the intersection over union of two inclusive-pixel boxes."""
    w = max(0.0, min(xmax0, xmax1) - max(xmin0, xmin1) + 1.0)
    h = max(0.0, min(ymax0, ymax1) - max(ymin0, ymin1) + 1.0)
    inter = w * h
    union = (
        (xmax0 - xmin0 + 1.0) * (ymax0 - ymin0 + 1.0)
        + (xmax1 - xmin1 + 1.0) * (ymax1 - ymin1 + 1.0)
        - inter
    )
    return 0.0 if union <= 0.0 else inter / union


def nms(
    candidates: Sequence[Candidate],
    order: Iterable[int],
    filter_id: int,
    threshold: float,
) -> list[int]:
    """Suppress boxes of class ``filter_id`` that overlap a better one.

    ``order`` lists candidate indices best first, with -1 marking boxes
    already suppressed. A new order is returned with more entries set to -1.
    """
    order = list(order)
    for i, n in enumerate(order):
        if n == -1 or candidates[n].cls_id != filter_id:
            continue
        a = candidates[n]
        for j in range(i + 1, len(order)):
            m = order[j]
            if m == -1 or candidates[m].cls_id != filter_id:
                continue
            b = candidates[m]
            iou = calculate_overlap(
                a.x, a.y, a.x + a.w, a.y + a.h,
                b.x, b.y, b.x + b.w, b.y + b.h,
            )
            if iou > threshold:
                order[j] = -1
    return order


def _sort_desc(probs: Sequence[float]) -> tuple[list[float], list[int]]:
    """Sort scores high to low with the partitioning used by the detector.

    Returns the sorted scores and the original index of each.
    """
    values = list(probs)
    indices = list(range(len(values)))
    stack = [(0, len(values) - 1)]
    while stack:
        left, right = stack.pop()
        if left >= right:
            continue
        key, key_index = values[left], indices[left]
        low, high = left, right
        while low < high:
            while low < high and values[high] <= key:
                high -= 1
            values[low], indices[low] = values[high], indices[high]
            while low < high and values[low] >= key:
                low += 1
            values[high], indices[high] = values[low], indices[low]
        values[low], indices[low] = key, key_index
        stack.append((low + 1, right))
        stack.append((left, low - 1))
    return values, indices


def _clamp(val: float, low: int, high: int) -> int:
    if val > low:
        return int(val if val < high else high)
    return low


def _decode_branch(
    branch: Branch, stride: int, threshold: float, is_quant: bool
) -> list[Candidate]:
    geometry = dict(
        grid_h=branch.grid_h,
        grid_w=branch.grid_w,
        stride=stride,
        dfl_len=branch.dfl_len,
        threshold=threshold,
    )
    if not is_quant:
        if branch.output_format is OutputFormat.INT8_NHWC:
            raise ValueError("NHWC outputs are supported only in quantised mode")
        return process_fp32(branch.box, branch.score, branch.score_sum, **geometry)
    decoder = {
        OutputFormat.INT8: process_i8,
        OutputFormat.UINT8: process_u8,
        OutputFormat.INT8_NHWC: process_i8_nhwc,
    }[branch.output_format]
    return decoder(
        branch.box, branch.box_zp, branch.box_scale,
        branch.score, branch.score_zp, branch.score_scale,
        branch.score_sum, branch.score_sum_zp, branch.score_sum_scale,
        **geometry,
    )


def post_process(
    branches: Sequence[Branch],
    model_width: int,
    model_height: int,
    letterbox: Letterbox | None = None,
    conf_threshold: float = BOX_THRESH,
    nms_threshold: float = NMS_THRESH,
    is_quant: bool = False,
) -> list[DetectResult]:
    """Decode, suppress and rescale the detections of all branches.

    Results come best first, at most OBJ_NUMB_MAX_SIZE of them.
    """
    letterbox = letterbox or Letterbox()
    candidates: list[Candidate] = []
    for branch in branches:
        if branch.grid_h <= 0:
            raise ValueError("grid dimensions must be positive")
        stride = model_height // branch.grid_h
        candidates.extend(_decode_branch(branch, stride, conf_threshold, is_quant))
    if not candidates:
        return []

    probs, order = _sort_desc([c.prob for c in candidates])
    for cls_id in sorted({c.cls_id for c in candidates}):
        order = nms(candidates, order, cls_id, nms_threshold)

    results: list[DetectResult] = []
    for prob, n in zip(probs, order):
        if n == -1:
            continue
        if len(results) >= OBJ_NUMB_MAX_SIZE:
            break
        cand = candidates[n]
        x1 = cand.x - letterbox.x_pad
        y1 = cand.y - letterbox.y_pad
        x2 = x1 + cand.w
        y2 = y1 + cand.h
        box = BoxRect(
            left=int(_clamp(x1, 0, model_width) / letterbox.scale),
            top=int(_clamp(y1, 0, model_height) / letterbox.scale),
            right=int(_clamp(x2, 0, model_width) / letterbox.scale),
            bottom=int(_clamp(y2, 0, model_height) / letterbox.scale),
        )
        results.append(DetectResult(box=box, prop=prob, cls_id=cand.cls_id))
    return results