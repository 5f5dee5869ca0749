"""
Decoding Module - PoseNet Keypoint Decoding
Turns heatmap, offset and displacement tensors into single or multiple poses
"""

from .errors import (
    PoseDecodingError,
    ConfigurationError,
    ShapeMismatchError,
    DegenerateInputError
)
from .skeleton import (
    Keypoint,
    PART_NAMES,
    PART_IDS,
    POSE_CHAIN,
    SKELETON_CONNECTIONS,
    NUM_KEYPOINTS,
    NUM_EDGES,
    empty_pose,
    pose_to_array,
    pose_score
)
from .tensor_view import (
    TensorView,
    validate_model_outputs
)
from .single_pose import decode_single_pose
from .multi_pose import (
    build_part_candidates,
    within_nms_radius_of_corresponding_point,
    traverse_to_target_keypoint,
    decode_pose_from_root,
    decode_multiple_poses
)

__all__ = [
    'PoseDecodingError',
    'ConfigurationError',
    'ShapeMismatchError',
    'DegenerateInputError',
    'Keypoint',
    'PART_NAMES',
    'PART_IDS',
    'POSE_CHAIN',
    'SKELETON_CONNECTIONS',
    'NUM_KEYPOINTS',
    'NUM_EDGES',
    'empty_pose',
    'pose_to_array',
    'pose_score',
    'TensorView',
    'validate_model_outputs',
    'decode_single_pose',
    'build_part_candidates',
    'within_nms_radius_of_corresponding_point',
    'traverse_to_target_keypoint',
    'decode_pose_from_root',
    'decode_multiple_poses'
]

__version__ = '1.0.0'
