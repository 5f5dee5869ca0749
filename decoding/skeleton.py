"""
Keypoint type and the fixed PoseNet skeleton tables.
"""

from collections import namedtuple
from typing import List

import numpy as np


# A single body part estimate. position is (x, y) in image pixels
# (or heatmap cells for a part candidate that is not refined yet).
Keypoint = namedtuple('Keypoint', ['score', 'position', 'id'])

PART_NAMES = [
    'nose', 'leftEye', 'rightEye', 'leftEar', 'rightEar', 'leftShoulder',
    'rightShoulder', 'leftElbow', 'rightElbow', 'leftWrist', 'rightWrist',
    'leftHip', 'rightHip', 'leftKnee', 'rightKnee', 'leftAnkle', 'rightAnkle'
]

NUM_KEYPOINTS = len(PART_NAMES)

PART_IDS = {name: idx for idx, name in enumerate(PART_NAMES)}

# (parent, child) tree rooted at the nose. The index of an edge selects
# its displacement channels, so the order must not change.
POSE_CHAIN = [
    (0, 1), (1, 3), (0, 2), (2, 4),
    (0, 5), (5, 7), (7, 9), (5, 11), (11, 13), (13, 15),
    (0, 6), (6, 8), (8, 10), (6, 12), (12, 14), (14, 16),
]

NUM_EDGES = len(POSE_CHAIN)

# Bones drawn for display. Not the traversal tree: includes the
# shoulder/hip cross bones and no nose-to-shoulder links.
SKELETON_CONNECTIONS = [
    (0, 1), (0, 2), (1, 3), (2, 4),
    (5, 6), (5, 11), (6, 12), (5, 12), (6, 11), (11, 12),
    (5, 7), (7, 9), (6, 8), (8, 10),
    (11, 13), (13, 15), (12, 14), (14, 16),
]


def empty_pose() -> List[Keypoint]:
    """
    Pose with every slot at the "not yet decoded" sentinel (score 0).

    Note: a keypoint decoded with a genuine score of exactly 0 is
    indistinguishable from an empty slot.
    """
    return [Keypoint(0.0, (0.0, 0.0), part_id) for part_id in range(NUM_KEYPOINTS)]


def pose_to_array(pose: List[Keypoint]) -> np.ndarray:
    """
    Convert a pose to an array of shape (17, 3) holding [x, y, score].
    """
    skeleton = np.zeros((NUM_KEYPOINTS, 3), dtype=np.float32)
    for keypoint in pose:
        x, y = keypoint.position
        skeleton[keypoint.id] = [x, y, keypoint.score]
    return skeleton


def pose_score(pose: List[Keypoint]) -> float:
    """Mean keypoint score of a pose."""
    if len(pose) == 0:
        return 0.0
    return float(sum(kp.score for kp in pose) / len(pose))
