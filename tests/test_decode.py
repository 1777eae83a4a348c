import numpy as np
import pytest

from yolotrack.decode import (
    OBJ_CLASS_NUM,
    Candidate,
    process_fp32,
    process_i8,
    process_i8_nhwc,
    process_u8,
)
from yolotrack.quant import deqnt_affine_to_f32


def fp32_inputs(grid_h=2, grid_w=3, dfl_len=4, hits=None):
    score = np.zeros((OBJ_CLASS_NUM, grid_h, grid_w), dtype=np.float32)
    for (cls_id, i, j), value in (hits or {}).items():
        score[cls_id, i, j] = value
    box = np.zeros((4 * dfl_len, grid_h, grid_w), dtype=np.float32)
    return box, score


def test_fp32_single_hit_class_and_prob():
    box, score = fp32_inputs(hits={(7, 1, 2): 0.75})
    found = process_fp32(box, score, None, 2, 3, 8, 4, 0.25)
    assert len(found) == 1
    assert found[0].cls_id == 7
    assert found[0].prob == pytest.approx(0.75)


def test_fp32_uniform_logits_give_square_box_centred_on_cell():
    box, score = fp32_inputs(hits={(0, 1, 2): 0.9})
    (cand,) = process_fp32(box, score, None, 2, 3, 16, 4, 0.25)
    assert cand.w == pytest.approx(cand.h)
    assert cand.x + cand.w / 2 == pytest.approx((2 + 0.5) * 16)
    assert cand.y + cand.h / 2 == pytest.approx((1 + 0.5) * 16)


def test_fp32_below_threshold_is_dropped():
    box, score = fp32_inputs(hits={(3, 0, 0): 0.2})
    assert process_fp32(box, score, None, 2, 3, 8, 4, 0.25) == []


def test_fp32_score_sum_filters_cells():
    box, score = fp32_inputs(hits={(3, 0, 0): 0.9})
    low = np.zeros((2, 3), dtype=np.float32)
    high = np.ones((2, 3), dtype=np.float32)
    assert process_fp32(box, score, low, 2, 3, 8, 4, 0.25) == []
    assert len(process_fp32(box, score, high, 2, 3, 8, 4, 0.25)) == 1


def test_candidates_come_in_row_major_order():
    box, score = fp32_inputs(hits={(0, 1, 0): 0.9, (0, 0, 1): 0.8})
    found = process_fp32(box, score, None, 2, 3, 8, 4, 0.25)
    assert [c.prob for c in found] == pytest.approx([0.8, 0.9])
    assert found[0].y < found[1].y


def test_i8_prob_is_dequantised_score():
    grid_h, grid_w, dfl_len = 2, 2, 4
    score = np.full((OBJ_CLASS_NUM, grid_h, grid_w), -128, dtype=np.int8)
    score[12, 0, 1] = 100
    box = np.zeros((4 * dfl_len, grid_h, grid_w), dtype=np.int8)
    found = process_i8(
        box, 0, 1.0, score, -128, 1 / 255, None, 0, 1.0,
        grid_h, grid_w, 8, dfl_len, 0.25,
    )
    assert len(found) == 1
    assert found[0].cls_id == 12
    assert found[0].prob == pytest.approx(deqnt_affine_to_f32(100, -128, 1 / 255))


def test_i8_initial_maximum_above_threshold_keeps_every_cell_unlabelled():
    grid_h, grid_w, dfl_len = 2, 2, 4
    score = np.zeros((OBJ_CLASS_NUM, grid_h, grid_w), dtype=np.int8)
    box = np.zeros((4 * dfl_len, grid_h, grid_w), dtype=np.int8)
    found = process_i8(
        box, 0, 1.0, score, -100, 1.0, None, 0, 1.0,
        grid_h, grid_w, 8, dfl_len, 0.25,
    )
    assert len(found) == grid_h * grid_w
    assert {c.cls_id for c in found} == {-1}
    assert found[0].prob == pytest.approx(deqnt_affine_to_f32(100, -100, 1.0))


def test_u8_wrapped_initial_maximum():
    grid_h, grid_w, dfl_len = 2, 2, 4
    score = np.zeros((OBJ_CLASS_NUM, grid_h, grid_w), dtype=np.uint8)
    score[5, 1, 1] = 250
    box = np.full((4 * dfl_len, grid_h, grid_w), 128, dtype=np.uint8)
    found = process_u8(
        box, 128, 1.0, score, 10, 1 / 255, None, 0, 1.0,
        grid_h, grid_w, 8, dfl_len, 0.25,
    )
    assert len(found) == grid_h * grid_w
    assert [c.cls_id for c in found] == [-1, -1, -1, 5]


def test_u8_score_sum_filter_accepts_bytes():
    grid_h, grid_w, dfl_len = 1, 2, 4
    score = np.zeros((OBJ_CLASS_NUM, grid_h, grid_w), dtype=np.uint8)
    score[2, 0, 0] = 200
    score[2, 0, 1] = 200
    box = np.full((4 * dfl_len, grid_h, grid_w), 128, dtype=np.uint8)
    sums = bytes([255, 0])
    found = process_u8(
        box.tobytes(), 128, 1.0, score.tobytes(), 0, 1 / 255, sums, 0, 1 / 255,
        grid_h, grid_w, 8, dfl_len, 0.25,
    )
    assert len(found) == 1
    assert found[0].cls_id == 2


def test_nhwc_matches_nchw_on_the_same_data():
    rng = np.random.default_rng(1234)
    grid_h, grid_w, dfl_len = 3, 4, 4
    score = rng.integers(-128, 128, (OBJ_CLASS_NUM, grid_h, grid_w)).astype(np.int8)
    box = rng.integers(-128, 128, (4 * dfl_len, grid_h, grid_w)).astype(np.int8)
    sums = rng.integers(-128, 128, (grid_h, grid_w)).astype(np.int8)
    args = (-128, 1 / 255, sums, -128, 1 / 255, grid_h, grid_w, 8, dfl_len, 0.5)
    nchw = process_i8(box, 3, 0.1, score, *args)
    nhwc = process_i8_nhwc(box.transpose(1, 2, 0), 3, 0.1, score.transpose(1, 2, 0), *args)
    assert nchw == nhwc
    assert all(isinstance(c, Candidate) for c in nchw)
    assert len(nchw) > 0


def test_short_tensor_raises():
    box, score = fp32_inputs()
    with pytest.raises(ValueError):
        process_fp32(box[:-1].reshape(-1)[:5], score, None, 2, 3, 8, 4, 0.25)


def test_non_positive_dfl_len_raises():
    box, score = fp32_inputs()
    with pytest.raises(ValueError):
        process_fp32(box, score, None, 2, 3, 8, 0, 0.25)