"""
Multi-person decoding.

Greedy PoseNet decoding: every above-threshold local maximum in the
heatmaps is a root candidate. Candidates are taken in descending score
order; a candidate too close to the same part of an already accepted pose
is dropped, otherwise the rest of its body is found by following the
displacement fields along the skeleton tree.
"""

from typing import List, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .errors import ConfigurationError, DegenerateInputError
from .skeleton import Keypoint, POSE_CHAIN, NUM_EDGES, empty_pose
from .tensor_view import TensorView, get_image_coords, get_offset_vector, validate_model_outputs


# ---------------------------------------------------------------------------
# Part candidates
# ---------------------------------------------------------------------------

def _pool_max(data: np.ndarray, radius: int) -> np.ndarray:
    """
    Per-channel maximum over a (2r+1) x (2r+1) window, clipped at the borders.
    """
    padded = np.pad(data, ((radius, radius), (radius, radius), (0, 0)),
                    mode='constant', constant_values=-np.inf)
    size = 2 * radius + 1
    windows = sliding_window_view(padded, (size, size), axis=(0, 1))
    return windows.max(axis=(-2, -1))


def build_part_candidates(heatmaps, score_threshold: float,
                          local_maximum_radius: int = 1) -> List[Keypoint]:
    """
    Collect every heatmap cell that is above threshold and a local maximum.

    A cell passes when no value in its window is strictly greater, so all
    cells of a flat peak are kept.

    Args:
        heatmaps: [1, H, W, 17] part confidences
        score_threshold: Minimum heatmap value for a candidate
        local_maximum_radius: Half-size of the local maximum window

    Returns:
        Unsorted candidates in scan order (channel, then y, then x), with
        positions as (x, y) heatmap cells
    """
    if local_maximum_radius < 0:
        raise ConfigurationError(
            f"local_maximum_radius must be >= 0, got {local_maximum_radius}"
        )
    if not isinstance(heatmaps, TensorView):
        heatmaps = TensorView(heatmaps, 'heatmaps')

    data = heatmaps.array
    pooled = _pool_max(data, local_maximum_radius)
    mask = (data >= score_threshold) & (data >= pooled)

    # channel-major scan order
    channels, ys, xs = np.nonzero(mask.transpose(2, 0, 1))

    candidates = []
    for c, y, x in zip(channels.tolist(), ys.tolist(), xs.tolist()):
        candidates.append(Keypoint(float(data[y, x, c]), (x, y), c))
    return candidates


# ---------------------------------------------------------------------------
# Non-maximum suppression
# ---------------------------------------------------------------------------

def squared_distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    return dx * dx + dy * dy


def within_nms_radius_of_corresponding_point(poses: List[List[Keypoint]],
                                             squared_nms_radius: float,
                                             position: Tuple[float, float],
                                             part_id: int) -> bool:
    """
    True if any accepted pose has its keypoint for `part_id` within the
    NMS radius of `position`. Only that one part is compared.
    """
    for pose in poses:
        if squared_distance(position, pose[part_id].position) <= squared_nms_radius:
            return True
    return False


# ---------------------------------------------------------------------------
# Skeleton traversal
# ---------------------------------------------------------------------------

def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def get_strided_index_near_point(point: Tuple[float, float], stride: int,
                                 height: int, width: int) -> Tuple[int, int]:
    """
    Nearest heatmap cell (y, x) to an image position.
    """
    x, y = point
    return (
        _clamp(int(round(y / stride)), 0, height - 1),
        _clamp(int(round(x / stride)), 0, width - 1),
    )


def get_displacement(edge_id: int, y: int, x: int,
                     displacements: TensorView) -> Tuple[float, float]:
    """(x, y) displacement for an edge; x channels follow the 16 y channels."""
    return (
        displacements.get(y, x, NUM_EDGES + edge_id),
        displacements.get(y, x, edge_id),
    )


def traverse_to_target_keypoint(edge_id: int,
                                 source_keypoint: Keypoint,
                                 target_id: int,
                                 heatmaps: TensorView,
                                 offsets: TensorView,
                                 stride: int,
                                 displacements: TensorView) -> Keypoint:
    """
    Step from a decoded keypoint to its neighbour along one tree edge.

    The source position is snapped to the heatmap grid, moved by the edge's
    displacement vector, snapped again and refined with the target part's
    offset vector.
    """
    height, width = heatmaps.height, heatmaps.width

    source_y, source_x = get_strided_index_near_point(
        source_keypoint.position, stride, height, width
    )
    displacement = get_displacement(edge_id, source_y, source_x, displacements)

    displaced_point = (
        source_keypoint.position[0] + displacement[0],
        source_keypoint.position[1] + displacement[1],
    )
    target_y, target_x = get_strided_index_near_point(displaced_point, stride, height, width)

    offset_x, offset_y = get_offset_vector(target_y, target_x, target_id, offsets)
    score = heatmaps.get(target_y, target_x, target_id)

    position = (target_x * stride + offset_x, target_y * stride + offset_y)
    return Keypoint(score, position, target_id)


def _walk_tree(pose: List[Keypoint], backward: bool,
               heatmaps: TensorView, offsets: TensorView, stride: int,
               displacements: TensorView):
    """
    One pass over the edge table. Backward runs last-to-first and fills
    parents from children; forward runs first-to-last and fills children
    from parents. Slots with a non-zero score are never overwritten.
    """
    edge_ids = reversed(range(NUM_EDGES)) if backward else range(NUM_EDGES)

    for edge_id in edge_ids:
        parent_id, child_id = POSE_CHAIN[edge_id]
        if backward:
            source_id, target_id = child_id, parent_id
        else:
            source_id, target_id = parent_id, child_id

        if pose[source_id].score > 0.0 and pose[target_id].score == 0.0:
            pose[target_id] = traverse_to_target_keypoint(
                edge_id, pose[source_id], target_id,
                heatmaps, offsets, stride, displacements
            )


def decode_pose_from_root(root: Keypoint,
                          heatmaps, offsets, stride: int,
                          displacement_fwd, displacement_bwd) -> List[Keypoint]:
    """
    Build a full pose around a root part candidate.

    Args:
        root: Candidate with its position in heatmap cells (x, y)
        heatmaps, offsets, displacement_fwd, displacement_bwd: model outputs
        stride: Heatmap cell size in input pixels

    Returns:
        17 keypoints indexed by part id, positions in input image pixels

    A keypoint whose decoded score is exactly 0 still counts as an empty
    slot, so its subtree is left at the sentinel (score 0, position (0, 0)).
    """
    heatmaps, offsets, displacement_fwd, displacement_bwd = validate_model_outputs(
        heatmaps, offsets, displacement_fwd, displacement_bwd
    )

    pose = empty_pose()
    pose[root.id] = Keypoint(root.score, get_image_coords(root, stride, offsets), root.id)

    _walk_tree(pose, True, heatmaps, offsets, stride, displacement_bwd)
    _walk_tree(pose, False, heatmaps, offsets, stride, displacement_fwd)

    return pose


# ---------------------------------------------------------------------------
# Greedy multi-pose decoding
# ---------------------------------------------------------------------------

def decode_multiple_poses(heatmaps, offsets,
                          displacement_fwd, displacement_bwd,
                          stride: int,
                          max_poses: int = 20,
                          score_threshold: float = 0.5,
                          nms_radius: float = 20,
                          local_maximum_radius: int = 1) -> List[List[Keypoint]]:
    """
    Decode up to `max_poses` poses from the model outputs.

    Args:
        heatmaps: [1, H, W, 17] part confidences (after sigmoid)
        offsets: [1, H, W, 34] offset vectors
        displacement_fwd: [1, H, W, 32] parent-to-child displacements
        displacement_bwd: [1, H, W, 32] child-to-parent displacements
        stride: Heatmap cell size in input pixels
        max_poses: Upper bound on returned poses
        score_threshold: Minimum heatmap value for a root candidate
        nms_radius: Minimum distance in pixels between the same part of
            two poses
        local_maximum_radius: Half-size of the candidate local maximum window

    Returns:
        Poses in acceptance order (highest scoring root first)
    """
    if stride <= 0:
        raise DegenerateInputError(f"stride must be positive, got {stride}")
    if max_poses < 1:
        raise ConfigurationError(f"max_poses must be >= 1, got {max_poses}")
    if nms_radius < 0:
        raise ConfigurationError(f"nms_radius must be >= 0, got {nms_radius}")

    heatmaps, offsets, displacement_fwd, displacement_bwd = validate_model_outputs(
        heatmaps, offsets, displacement_fwd, displacement_bwd
    )

    candidates = build_part_candidates(heatmaps, score_threshold, local_maximum_radius)
    # sorted() is stable, equal scores keep scan order
    candidates = sorted(candidates, key=lambda part: part.score, reverse=True)

    squared_nms_radius = nms_radius * nms_radius
    poses = []

    for root in candidates:
        if len(poses) >= max_poses:
            break

        root_position = get_image_coords(root, stride, offsets)
        if within_nms_radius_of_corresponding_point(poses, squared_nms_radius,
                                                    root_position, root.id):
            continue

        pose = decode_pose_from_root(root, heatmaps, offsets, stride,
                                     displacement_fwd, displacement_bwd)
        poses.append(pose)

    return poses
