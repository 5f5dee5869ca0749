"""
PoseNet Estimation Pipeline
- Input sizing and MobileNet / ResNet50 preprocessing
- Model output mapping (heatmaps, offsets, displacements)
- Single / multi-pose decoding with stride derivation
- Scaling, visualization and JSON export of decoded poses
"""

import cv2
import numpy as np
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
import json
from tqdm import tqdm

from decoding import (
    ConfigurationError,
    DegenerateInputError,
    Keypoint,
    PART_NAMES,
    SKELETON_CONNECTIONS,
    decode_multiple_poses,
    decode_single_pose,
    pose_score
)


ESTIMATION_TYPES = ('single_pose', 'multi_pose')
MODEL_TYPES = ('mobilenet', 'resnet50')

# Per-channel RGB means subtracted by the ResNet50 model
RESNET_MEAN = np.array([123.15, 115.90, 103.06], dtype=np.float32)

OUTPUT_KEYS = ('heatmaps', 'offsets', 'displacement_fwd', 'displacement_bwd')

MAX_POSES_LIMIT = 20

DEFAULT_CONFIG = {
    'estimation_type': 'single_pose',
    'model_type': 'resnet50',
    'input_height': 256,
    'min_input_dim': 130,
    'max_poses': 20,
    'score_threshold': 0.25,
    'nms_radius': 100,
    'local_maximum_radius': 1,
    'min_confidence': 0.7,
    'apply_sigmoid': True,
    'mirror_image': False
}


# --- Configuration ---

def validate_config(config: Dict) -> Dict:
    """
    Check a merged configuration and return it.

    Raises:
        ConfigurationError: on unknown keys or out-of-range values
    """
    unknown = set(config) - set(DEFAULT_CONFIG)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

    if config['estimation_type'] not in ESTIMATION_TYPES:
        raise ConfigurationError(
            f"Invalid estimation type '{config['estimation_type']}', "
            f"expected one of {ESTIMATION_TYPES}"
        )
    if config['model_type'] not in MODEL_TYPES:
        raise ConfigurationError(
            f"Invalid model type '{config['model_type']}', expected one of {MODEL_TYPES}"
        )
    if not 1 <= int(config['max_poses']) <= MAX_POSES_LIMIT:
        raise ConfigurationError(
            f"max_poses must be in [1, {MAX_POSES_LIMIT}], got {config['max_poses']}"
        )
    if not 0.0 <= float(config['score_threshold']) <= 1.0:
        raise ConfigurationError(
            f"score_threshold must be in [0, 1], got {config['score_threshold']}"
        )
    if float(config['nms_radius']) <= 0:
        raise ConfigurationError(f"nms_radius must be positive, got {config['nms_radius']}")
    if int(config['local_maximum_radius']) < 0:
        raise ConfigurationError(
            f"local_maximum_radius must be >= 0, got {config['local_maximum_radius']}"
        )
    if not 0.0 <= float(config['min_confidence']) <= 1.0:
        raise ConfigurationError(
            f"min_confidence must be in [0, 1], got {config['min_confidence']}"
        )
    if int(config['input_height']) < 1 or int(config['min_input_dim']) < 1:
        raise ConfigurationError("input_height and min_input_dim must be positive")

    return config


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict] = None) -> Dict:
    """
    Merge defaults, an optional JSON file and explicit overrides.

    Args:
        config_path: Path to a JSON configuration file
        overrides: Values that take precedence over the file

    Returns:
        Validated configuration dictionary
    """
    config = dict(DEFAULT_CONFIG)

    if config_path:
        with open(config_path, 'r') as f:
            config.update(json.load(f))

    if overrides:
        config.update(overrides)

    # Single-pose mode only ever produces one skeleton
    if config.get('estimation_type') == 'single_pose':
        config['max_poses'] = 1

    return validate_config(config)


# --- Geometry helpers ---

def compute_stride(input_dim: int, heatmap_dim: int) -> int:
    """
    Stride between heatmap cells and input pixels, rounded down to a
    multiple of 8.

    Raises:
        DegenerateInputError: if the heatmap has a single row/column or the
            input is too small for the heatmap grid
    """
    if heatmap_dim <= 1:
        raise DegenerateInputError(
            f"Heatmap dimension must be greater than 1, got {heatmap_dim}"
        )

    stride = (int(input_dim) - 1) // (int(heatmap_dim) - 1)
    stride -= stride % 8

    if stride <= 0:
        raise DegenerateInputError(
            f"Input dimension {input_dim} too small for heatmap dimension {heatmap_dim}"
        )
    return stride


def compute_input_dims(frame_shape: Sequence[int], input_height: int = 256,
                       min_input_dim: int = 130) -> Tuple[int, int]:
    """
    Model input size that keeps the source aspect ratio.

    Args:
        frame_shape: Source image shape (height, width, ...)
        input_height: Requested model input height
        min_input_dim: Lower bound for both dimensions

    Returns:
        (width, height) of the model input
    """
    src_h, src_w = frame_shape[:2]
    if src_h <= 0 or src_w <= 0:
        raise DegenerateInputError(f"Invalid frame shape {tuple(frame_shape)}")

    height = max(int(input_height), min_input_dim)
    width = int(height * src_w / src_h)

    # Width clamped: derive the height from it to keep the aspect ratio
    if width < min_input_dim:
        width = min_input_dim
        height = max(int(width * src_h / src_w), min_input_dim)
    return width, height


def preprocess_image(frame: np.ndarray, input_dims: Tuple[int, int],
                     model_type: str = 'resnet50') -> np.ndarray:
    """
    Resize a BGR frame and normalize it for the selected model.

    Args:
        frame: Input image (BGR, uint8)
        input_dims: (width, height) of the model input
        model_type: 'mobilenet' or 'resnet50'

    Returns:
        Float32 tensor of shape (1, height, width, 3), RGB
    """
    if model_type not in MODEL_TYPES:
        raise ConfigurationError(f"Invalid model type '{model_type}'")

    resized = cv2.resize(frame, tuple(input_dims), interpolation=cv2.INTER_AREA)
    rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB).astype(np.float32) / 255.0

    if model_type == 'mobilenet':
        tensor = 2.0 * rgb - 1.0
    else:
        tensor = rgb * 255.0 - RESNET_MEAN

    return tensor[np.newaxis, ...].astype(np.float32)


def sigmoid(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=np.float32)
    return 1.0 / (1.0 + np.exp(-x))


def split_model_outputs(outputs: Union[Sequence[np.ndarray], Dict[str, np.ndarray]],
                        model_type: str = 'resnet50',
                        apply_sigmoid: bool = True) -> Dict[str, np.ndarray]:
    """
    Name the four model outputs.

    Outputs given as a sequence follow model order: heatmaps, offsets, then
    the displacement pair, which is (forward, backward) for MobileNet and
    (backward, forward) for ResNet50. A dict is taken as already named.
    """
    if isinstance(outputs, dict):
        missing = [key for key in OUTPUT_KEYS if key not in outputs]
        if missing:
            raise ConfigurationError(f"Missing model outputs: {missing}")
        named = {key: np.asarray(outputs[key]) for key in OUTPUT_KEYS}
    else:
        if len(outputs) != 4:
            raise ConfigurationError(f"Expected 4 model outputs, got {len(outputs)}")
        if model_type == 'mobilenet':
            fwd, bwd = outputs[2], outputs[3]
        elif model_type == 'resnet50':
            fwd, bwd = outputs[3], outputs[2]
        else:
            raise ConfigurationError(f"Invalid model type '{model_type}'")
        named = {
            'heatmaps': np.asarray(outputs[0]),
            'offsets': np.asarray(outputs[1]),
            'displacement_fwd': np.asarray(fwd),
            'displacement_bwd': np.asarray(bwd)
        }

    if apply_sigmoid:
        named['heatmaps'] = sigmoid(named['heatmaps'])

    return named


def scale_poses(poses: List[List[Keypoint]], source_size: Tuple[int, int],
                input_dims: Tuple[int, int], mirror: bool = False) -> List[List[Keypoint]]:
    """
    Map poses from model input pixels back to the source image.

    Args:
        poses: Decoded poses
        source_size: (width, height) of the source image
        input_dims: (width, height) of the model input
        mirror: Flip x (webcam view)
    """
    src_w, src_h = source_size
    scale = min(src_w, src_h) / min(input_dims)

    scaled = []
    for pose in poses:
        scaled_pose = []
        for kp in pose:
            x, y = kp.position[0] * scale, kp.position[1] * scale
            if mirror:
                x = src_w - x
            scaled_pose.append(Keypoint(kp.score, (x, y), kp.id))
        scaled.append(scaled_pose)
    return scaled


def poses_to_dicts(poses: List[List[Keypoint]], min_confidence: float = 0.0) -> List[Dict]:
    """JSON-friendly representation of decoded poses."""
    result = []
    for pose in poses:
        result.append({
            'score': pose_score(pose),
            'keypoints': [
                {
                    'part': PART_NAMES[kp.id],
                    'x': float(kp.position[0]),
                    'y': float(kp.position[1]),
                    'score': float(kp.score),
                    'visible': bool(kp.score >= min_confidence)
                }
                for kp in pose
            ]
        })
    return result


def visualize_poses(image: np.ndarray, poses: List[List[Keypoint]],
                    min_confidence: float = 0.7,
                    output_path: Optional[str] = None) -> np.ndarray:
    """
    Draw every pose on a copy of the image with a different colour per person.

    Args:
        image: BGR image in the same pixel space as the poses
        poses: Decoded poses
        min_confidence: Keypoints below this score are not drawn
        output_path: Optional path to save visualization

    Returns:
        Image with all poses drawn
    """
    canvas = image.copy()

    colors = [
        (0, 255, 0),      # Green
        (255, 0, 0),      # Blue
        (0, 0, 255),      # Red
        (255, 255, 0),    # Cyan
        (255, 0, 255),    # Magenta
        (0, 255, 255),    # Yellow
    ]

    for person_idx, pose in enumerate(poses):
        color = colors[person_idx % len(colors)]

        for kp in pose:
            if kp.score >= min_confidence:
                cv2.circle(canvas, (int(kp.position[0]), int(kp.position[1])), 4, color, -1)

        for i, j in SKELETON_CONNECTIONS:
            if pose[i].score >= min_confidence and pose[j].score >= min_confidence:
                pt1 = (int(pose[i].position[0]), int(pose[i].position[1]))
                pt2 = (int(pose[j].position[0]), int(pose[j].position[1]))
                cv2.line(canvas, pt1, pt2, color, 2)

    if output_path:
        cv2.imwrite(str(output_path), canvas)

    return canvas


# --- Estimator ---

class PoseEstimator:
    """
    Decodes PoseNet model outputs into poses.

    The network itself is external: pass its outputs to decode_outputs(),
    or pass a callable model to estimate_frame().
    """

    def __init__(self, config: Optional[Dict] = None, verbose: bool = False):
        """
        Initialize estimator.

        Args:
            config: Overrides merged onto DEFAULT_CONFIG
            verbose: Print progress information
        """
        self.config = load_config(overrides=config)
        self.verbose = verbose

    def decode_outputs(self, outputs, input_dims: Optional[Tuple[int, int]] = None,
                       stride: Optional[int] = None) -> List[List[Keypoint]]:
        """
        Decode one frame of model outputs.

        Args:
            outputs: Four outputs in model order, or a dict keyed by OUTPUT_KEYS
            input_dims: (width, height) of the model input, used to derive the stride
            stride: Explicit stride, takes precedence over input_dims

        Returns:
            Poses in model input pixel coordinates
        """
        named = split_model_outputs(outputs, self.config['model_type'],
                                    self.config['apply_sigmoid'])
        heatmaps = named['heatmaps']

        if stride is None:
            if input_dims is None:
                raise ConfigurationError("Either input_dims or stride is required")
            heatmap_height = heatmaps.shape[-3]
            stride = compute_stride(input_dims[1], heatmap_height)

        estimation_type = self.config['estimation_type']

        if estimation_type == 'single_pose':
            poses = [decode_single_pose(heatmaps, named['offsets'], stride)]
        elif estimation_type == 'multi_pose':
            poses = decode_multiple_poses(
                heatmaps,
                named['offsets'],
                named['displacement_fwd'],
                named['displacement_bwd'],
                stride,
                max_poses=int(self.config['max_poses']),
                score_threshold=float(self.config['score_threshold']),
                nms_radius=float(self.config['nms_radius']),
                local_maximum_radius=int(self.config['local_maximum_radius'])
            )
        else:
            raise ConfigurationError(f"Invalid estimation type '{estimation_type}'")

        if self.verbose:
            print(f"  Decoded {len(poses)} pose(s) (stride {stride}, mode {estimation_type})")

        return poses

    def estimate_frame(self, frame: np.ndarray,
                       model: Callable[[np.ndarray], Sequence[np.ndarray]]) -> List[List[Keypoint]]:
        """
        Preprocess a BGR frame, run the external model and decode its outputs.

        Returns:
            Poses in source frame pixel coordinates
        """
        input_dims = compute_input_dims(frame.shape, self.config['input_height'],
                                        self.config['min_input_dim'])
        input_tensor = preprocess_image(frame, input_dims, self.config['model_type'])

        outputs = model(input_tensor)
        poses = self.decode_outputs(outputs, input_dims=input_dims)

        source_size = (frame.shape[1], frame.shape[0])
        return scale_poses(poses, source_size, input_dims, self.config['mirror_image'])


# --- Saved model outputs ---

def load_model_outputs(npz_path: str) -> Tuple[Dict[str, np.ndarray], Dict]:
    """
    Load model outputs saved with np.savez.

    The archive holds the four OUTPUT_KEYS arrays and either `stride` or
    `input_height` (optionally `input_width`).

    Returns:
        (outputs, geometry) where geometry has 'stride' or 'input_dims'
    """
    with np.load(npz_path) as data:
        missing = [key for key in OUTPUT_KEYS if key not in data.files]
        if missing:
            raise ValueError(f"{npz_path}: missing arrays {missing}")

        outputs = {key: data[key] for key in OUTPUT_KEYS}

        if 'stride' in data.files:
            geometry = {'stride': int(data['stride'])}
        elif 'input_height' in data.files:
            height = int(data['input_height'])
            width = int(data['input_width']) if 'input_width' in data.files else height
            geometry = {'input_dims': (width, height)}
        else:
            raise ValueError(f"{npz_path}: needs 'stride' or 'input_height'")

    return outputs, geometry


def decode_output_file(estimator: PoseEstimator, npz_path: str) -> List[List[Keypoint]]:
    outputs, geometry = load_model_outputs(npz_path)
    return estimator.decode_outputs(outputs,
                                    input_dims=geometry.get('input_dims'),
                                    stride=geometry.get('stride'))


def decode_output_folder(input_folder: str, output_folder: str,
                         config: Optional[Dict] = None) -> Dict[str, List[Dict]]:
    """
    Decode every saved .npz model output in a folder.

    Args:
        input_folder: Folder containing .npz files
        output_folder: Folder to write one JSON per input plus metadata.json
        config: Estimator configuration overrides

    Returns:
        Dictionary mapping file stems to exported poses
    """
    input_folder = Path(input_folder)
    output_folder = Path(output_folder)
    output_folder.mkdir(parents=True, exist_ok=True)

    estimator = PoseEstimator(config)
    min_confidence = estimator.config['min_confidence']

    npz_files = sorted(input_folder.glob('*.npz'))
    print(f"Decoding {len(npz_files)} output files...")

    results = {}
    failed = []

    for npz_path in tqdm(npz_files, desc="Decoding"):
        try:
            poses = decode_output_file(estimator, str(npz_path))
        except Exception as e:
            print(f"  ✗ Error decoding {npz_path.name}: {e}")
            failed.append(npz_path.name)
            continue

        exported = poses_to_dicts(poses, min_confidence)
        results[npz_path.stem] = exported

        with open(output_folder / f"{npz_path.stem}.json", 'w') as f:
            json.dump(exported, f, indent=2)

    metadata = {
        'num_files': len(results),
        'failed': failed,
        'part_names': PART_NAMES,
        'config': estimator.config,
        'poses_per_file': {name: len(poses) for name, poses in results.items()}
    }

    with open(output_folder / 'metadata.json', 'w') as f:
        json.dump(metadata, f, indent=2)

    print(f"\n✓ Decoded {len(results)} files ({len(failed)} failed)")
    print(f"✓ Saved to {output_folder}")

    return results
