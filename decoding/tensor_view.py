"""
Read-only accessor over the model output tensors.

Layout is NHWC with batch 1. The backing buffer is a contiguous float32
array, so element (y, x, c) lives at flat index (y * width + x) * channels + c.
"""

from typing import Tuple

import numpy as np

from .errors import ShapeMismatchError
from .skeleton import Keypoint, NUM_KEYPOINTS, NUM_EDGES


class TensorView:
    """
    Bounds-checked view over a [1, H, W, C] (or [H, W, C]) array.
    """

    def __init__(self, array, name: str = 'tensor'):
        if isinstance(array, TensorView):
            array = array.array

        data = np.asarray(array)
        if data.ndim == 4:
            if data.shape[0] != 1:
                raise ShapeMismatchError(
                    f"{name}: expected batch size 1, got {data.shape[0]}"
                )
            data = data[0]
        elif data.ndim != 3:
            raise ShapeMismatchError(
                f"{name}: expected a [1, H, W, C] tensor, got shape {data.shape}"
            )

        self.name = name
        self._data = np.array(data, dtype=np.float32, order='C')
        self._data.setflags(write=False)
        self._flat = self._data.reshape(-1)
        self.height, self.width, self.channels = self._data.shape

    @property
    def array(self) -> np.ndarray:
        """Read-only (H, W, C) array."""
        return self._data

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return (1, self.height, self.width, self.channels)

    def channel(self, c: int) -> np.ndarray:
        """(H, W) slice of one channel."""
        if not 0 <= c < self.channels:
            raise IndexError(f"{self.name}: channel {c} out of range [0, {self.channels})")
        return self._data[:, :, c]

    def get(self, y: int, x: int, c: int) -> float:
        if not (0 <= y < self.height and 0 <= x < self.width and 0 <= c < self.channels):
            raise IndexError(
                f"{self.name}: index (y={y}, x={x}, c={c}) out of range "
                f"for shape ({self.height}, {self.width}, {self.channels})"
            )
        return float(self._flat[(y * self.width + x) * self.channels + c])

    def __repr__(self):
        return f"TensorView(name={self.name!r}, shape={self.shape})"


def get_offset_vector(y: int, x: int, part_id: int, offsets: TensorView) -> Tuple[float, float]:
    """
    Sub-stride (x, y) refinement for a part at heatmap cell (y, x).
    x offsets are stored after the 17 y offsets.
    """
    return (
        offsets.get(y, x, part_id + NUM_KEYPOINTS),
        offsets.get(y, x, part_id),
    )


def _as_view(array, name: str) -> TensorView:
    if isinstance(array, TensorView):
        return array
    return TensorView(array, name)


def _check_channels(view: TensorView, expected: int):
    if view.channels != expected:
        raise ShapeMismatchError(
            f"{view.name}: expected {expected} channels, got {view.channels}"
        )


def validate_model_outputs(heatmaps, offsets,
                           displacement_fwd=None,
                           displacement_bwd=None) -> Tuple[TensorView, ...]:
    """
    Wrap the model outputs in TensorViews and check that they belong
    together: 17 heatmap channels, 34 offset channels, 32 displacement
    channels and one shared spatial grid.

    Returns:
        (heatmaps, offsets, displacement_fwd, displacement_bwd) views;
        displacement entries are None when not given.
    """
    heatmaps = _as_view(heatmaps, 'heatmaps')
    offsets = _as_view(offsets, 'offsets')
    _check_channels(heatmaps, NUM_KEYPOINTS)
    _check_channels(offsets, 2 * NUM_KEYPOINTS)

    views = [heatmaps, offsets]
    for array, name in ((displacement_fwd, 'displacement_fwd'),
                        (displacement_bwd, 'displacement_bwd')):
        if array is None:
            views.append(None)
            continue
        view = _as_view(array, name)
        _check_channels(view, 2 * NUM_EDGES)
        views.append(view)

    grid = (heatmaps.height, heatmaps.width)
    for view in views[1:]:
        if view is not None and (view.height, view.width) != grid:
            raise ShapeMismatchError(
                f"{view.name}: spatial size {(view.height, view.width)} "
                f"does not match heatmaps {grid}"
            )

    return tuple(views)


def get_image_coords(part: Keypoint, stride: int, offsets: TensorView) -> Tuple[float, float]:
    """
    Refine a part whose position is a heatmap cell to image coordinates:
    cell * stride + offset vector.
    """
    heatmap_x, heatmap_y = int(part.position[0]), int(part.position[1])
    offset_x, offset_y = get_offset_vector(heatmap_y, heatmap_x, part.id, offsets)
    return (heatmap_x * stride + offset_x, heatmap_y * stride + offset_y)
