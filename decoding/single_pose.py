"""
Single-person decoding: one global maximum per heatmap channel.
"""

from typing import List

import numpy as np

from .errors import DegenerateInputError
from .skeleton import Keypoint, NUM_KEYPOINTS
from .tensor_view import get_image_coords, validate_model_outputs


def argmax_2d(heatmap: np.ndarray):
    """
    (y, x) of the largest value in an (H, W) grid.
    Ties resolve to the first cell in row-major order.
    """
    flat_index = int(np.argmax(heatmap))
    return divmod(flat_index, heatmap.shape[1])


def decode_single_pose(heatmaps, offsets, stride: int) -> List[Keypoint]:
    """
    Decode exactly one pose from the model outputs.

    Args:
        heatmaps: [1, H, W, 17] part confidences (after sigmoid)
        offsets: [1, H, W, 34] offset vectors
        stride: Heatmap cell size in input pixels

    Returns:
        17 keypoints indexed by part id, positions in input image pixels
    """
    if stride <= 0:
        raise DegenerateInputError(f"stride must be positive, got {stride}")

    heatmaps, offsets, _, _ = validate_model_outputs(heatmaps, offsets)

    pose = []
    for part_id in range(NUM_KEYPOINTS):
        heatmap = heatmaps.channel(part_id)
        y, x = argmax_2d(heatmap)
        score = heatmaps.get(y, x, part_id)

        part = Keypoint(score, (x, y), part_id)
        pose.append(Keypoint(score, get_image_coords(part, stride, offsets), part_id))

    return pose
