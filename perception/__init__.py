"""
Perception Module - PoseNet Pose Estimation
Handles input preprocessing, model output mapping, pose decoding and visualization
"""

from .pose_estimator import (
    DEFAULT_CONFIG,
    PoseEstimator,
    load_config,
    compute_stride,
    compute_input_dims,
    preprocess_image,
    split_model_outputs,
    scale_poses,
    poses_to_dicts,
    visualize_poses,
    load_model_outputs,
    decode_output_folder
)

__all__ = [
    'DEFAULT_CONFIG',
    'PoseEstimator',
    'load_config',
    'compute_stride',
    'compute_input_dims',
    'preprocess_image',
    'split_model_outputs',
    'scale_poses',
    'poses_to_dicts',
    'visualize_poses',
    'load_model_outputs',
    'decode_output_folder'
]

__version__ = '1.0.0'
