"""
Test Script for Module 1: Tensor View and Single-Pose Decoding
Tests tensor access, output validation and global-maximum decoding
"""

import sys
from pathlib import Path
import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from decoding import (
    TensorView,
    ShapeMismatchError,
    DegenerateInputError,
    NUM_KEYPOINTS,
    validate_model_outputs,
    decode_single_pose,
    pose_to_array,
    pose_score
)


def make_single_outputs(height=3, width=3):
    heatmaps = np.zeros((1, height, width, 17), dtype=np.float32)
    offsets = np.zeros((1, height, width, 34), dtype=np.float32)
    return heatmaps, offsets


def test_tensor_view_layout():
    """Test 1: Flat NHWC indexing and bounds checks"""
    print("\n" + "="*60)
    print("TEST 1: TensorView Layout")
    print("="*60)

    array = np.arange(2 * 3 * 4, dtype=np.float32).reshape(1, 2, 3, 4)
    view = TensorView(array, 'test')

    assert view.shape == (1, 2, 3, 4)
    assert (view.height, view.width, view.channels) == (2, 3, 4)

    for y in range(2):
        for x in range(3):
            for c in range(4):
                assert view.get(y, x, c) == array[0, y, x, c]
    print("✓ get(y, x, c) matches numpy indexing")

    np.testing.assert_array_equal(view.channel(1), array[0, :, :, 1])

    for index in [(2, 0, 0), (0, 3, 0), (0, 0, 4), (-1, 0, 0)]:
        with pytest.raises(IndexError):
            view.get(*index)
    print("✓ Out-of-range access rejected")

    # A 3D array is treated as batch 1
    assert TensorView(array[0]).shape == (1, 2, 3, 4)

    # The caller's array stays writable
    array[0, 0, 0, 0] = 42.0
    assert view.get(0, 0, 0) == 0.0


def test_tensor_view_rejects_bad_rank():
    """Test 2: Rank and batch validation"""
    print("\n" + "="*60)
    print("TEST 2: TensorView Shape Validation")
    print("="*60)

    with pytest.raises(ShapeMismatchError):
        TensorView(np.zeros((2, 3, 3, 17)), 'heatmaps')

    with pytest.raises(ShapeMismatchError):
        TensorView(np.zeros((3, 17)), 'heatmaps')

    print("✓ Batch > 1 and 2D tensors rejected")


def test_validate_model_outputs():
    """Test 3: Channel counts and shared grid"""
    print("\n" + "="*60)
    print("TEST 3: Model Output Validation")
    print("="*60)

    heatmaps, offsets = make_single_outputs(5, 5)
    displacements = np.zeros((1, 5, 5, 32), dtype=np.float32)

    views = validate_model_outputs(heatmaps, offsets, displacements, displacements)
    assert [v.channels for v in views] == [17, 34, 32, 32]

    views = validate_model_outputs(heatmaps, offsets)
    assert views[2] is None and views[3] is None

    with pytest.raises(ShapeMismatchError):
        validate_model_outputs(np.zeros((1, 5, 5, 16)), offsets)

    with pytest.raises(ShapeMismatchError):
        validate_model_outputs(heatmaps, np.zeros((1, 5, 5, 17)))

    with pytest.raises(ShapeMismatchError):
        validate_model_outputs(heatmaps, offsets, np.zeros((1, 5, 5, 30)), displacements)

    with pytest.raises(ShapeMismatchError):
        validate_model_outputs(heatmaps, np.zeros((1, 4, 5, 34)))

    print("✓ Mismatched model/decoder pairings rejected")


def test_single_pose_center_peak():
    """Test 4: Single peak refined by stride"""
    print("\n" + "="*60)
    print("TEST 4: Single Pose - Center Peak")
    print("="*60)

    heatmaps, offsets = make_single_outputs(3, 3)
    heatmaps[0, :, :, 0] = [[0, 0, 0], [0, 1, 0], [0, 0, 0]]

    pose = decode_single_pose(heatmaps, offsets, stride=16)

    print(f"  Nose: {pose[0]}")
    assert len(pose) == NUM_KEYPOINTS
    assert [kp.id for kp in pose] == list(range(NUM_KEYPOINTS))
    assert pose[0].position == (16.0, 16.0)
    assert pose[0].score == 1.0


def test_single_pose_scores_are_channel_maxima():
    """Test 5: Every score equals its channel maximum"""
    print("\n" + "="*60)
    print("TEST 5: Single Pose - Channel Maxima")
    print("="*60)

    rng = np.random.default_rng(7)
    heatmaps = rng.random((1, 9, 11, 17)).astype(np.float32)
    offsets = rng.normal(scale=4.0, size=(1, 9, 11, 34)).astype(np.float32)

    pose = decode_single_pose(heatmaps, offsets, stride=8)

    for part_id, kp in enumerate(pose):
        assert kp.id == part_id
        assert kp.score == float(heatmaps[0, :, :, part_id].max())

    print(f"✓ Mean score: {pose_score(pose):.3f}")


def test_single_pose_offset_refinement():
    """Test 6: Offset vectors (x after the 17 y channels)"""
    print("\n" + "="*60)
    print("TEST 6: Single Pose - Offset Refinement")
    print("="*60)

    heatmaps, offsets = make_single_outputs(4, 4)
    heatmaps[0, 2, 1, 3] = 0.9
    offsets[0, 2, 1, 3] = 2.5          # y offset of part 3
    offsets[0, 2, 1, 3 + 17] = -1.5    # x offset of part 3

    pose = decode_single_pose(heatmaps, offsets, stride=8)

    assert pose[3].position == (1 * 8 - 1.5, 2 * 8 + 2.5)
    print(f"✓ Refined position: {pose[3].position}")


def test_single_pose_tie_break():
    """Test 7: Ties keep the first cell in row-major order"""
    print("\n" + "="*60)
    print("TEST 7: Single Pose - Tie Break")
    print("="*60)

    heatmaps, offsets = make_single_outputs(3, 3)
    heatmaps[0, 1, 0, 5] = 0.7
    heatmaps[0, 0, 2, 5] = 0.7

    pose = decode_single_pose(heatmaps, offsets, stride=16)

    assert pose[5].position == (32.0, 0.0)
    # All-zero channels resolve to the first cell
    assert pose[6].position == (0.0, 0.0)
    assert pose[6].score == 0.0


def test_single_pose_errors():
    """Test 8: Invalid stride and channel counts"""
    print("\n" + "="*60)
    print("TEST 8: Single Pose - Errors")
    print("="*60)

    heatmaps, offsets = make_single_outputs(3, 3)

    with pytest.raises(DegenerateInputError):
        decode_single_pose(heatmaps, offsets, stride=0)

    with pytest.raises(ShapeMismatchError):
        decode_single_pose(heatmaps[..., :1], offsets, stride=16)

    print("✓ Errors raised as typed exceptions")


def test_pose_to_array():
    """Test 9: Pose to (17, 3) array conversion"""
    print("\n" + "="*60)
    print("TEST 9: Pose Array Conversion")
    print("="*60)

    heatmaps, offsets = make_single_outputs(3, 3)
    heatmaps[0, 2, 1, 10] = 0.5

    pose = decode_single_pose(heatmaps, offsets, stride=8)
    skeleton = pose_to_array(pose)

    assert skeleton.shape == (17, 3)
    np.testing.assert_allclose(skeleton[10], [8.0, 16.0, 0.5])


def run_all_tests():
    """Run all Module 1 tests"""
    print("\n" + "#"*60)
    print("#" + " "*58 + "#")
    print("#  MODULE 1 TEST SUITE - Tensor View & Single Pose" + " "*8 + "#")
    print("#" + " "*58 + "#")
    print("#"*60)

    tests = [
        ("TensorView Layout", test_tensor_view_layout),
        ("TensorView Shape Validation", test_tensor_view_rejects_bad_rank),
        ("Model Output Validation", test_validate_model_outputs),
        ("Single Pose Center Peak", test_single_pose_center_peak),
        ("Single Pose Channel Maxima", test_single_pose_scores_are_channel_maxima),
        ("Single Pose Offsets", test_single_pose_offset_refinement),
        ("Single Pose Tie Break", test_single_pose_tie_break),
        ("Single Pose Errors", test_single_pose_errors),
        ("Pose Array Conversion", test_pose_to_array),
    ]

    results = []
    for test_name, test_func in tests:
        try:
            test_func()
            results.append((test_name, True))
        except Exception as e:
            print(f"\n✗ Test '{test_name}' failed: {e}")
            results.append((test_name, False))

    # Summary
    print("\n" + "="*60)
    print("TEST SUMMARY")
    print("="*60)

    for test_name, result in results:
        status = "✓ PASS" if result else "✗ FAIL"
        print(f"{status:8s} | {test_name}")

    passed = sum(1 for _, r in results if r)
    total = len(results)

    print(f"\nTotal: {passed}/{total} tests passed")
    print("\n" + "#"*60 + "\n")


if __name__ == "__main__":
    run_all_tests()
