"""Camera frame capture: YUV/NV21 conversion to RGB, thumbnails and image file I/O."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import cv2
import numpy as np
import numpy.typing as npt

from .config import CaptureConfig

logger = logging.getLogger(__name__)

_YUV_PLANES = 3
_PLANAR_PIXEL_STRIDE = 1


class ImageFormat(str, Enum):
    """Camera image formats the capture manager understands."""

    YUV_420_888 = "YUV_420_888"
    NV21 = "NV21"
    JPEG = "JPEG"


@dataclass
class ImagePlane:
    """One plane of a camera image buffer.

    Attributes:
        buffer: Raw plane bytes.
        pixel_stride: Distance in bytes between adjacent samples of a row.
        row_stride: Distance in bytes between rows (0 = tightly packed).
    """

    buffer: bytes | npt.NDArray[np.uint8]
    pixel_stride: int = 1
    row_stride: int = 0

    def as_array(self) -> npt.NDArray[np.uint8]:
        if isinstance(self.buffer, (bytes, bytearray, memoryview)):
            return np.frombuffer(self.buffer, dtype=np.uint8)
        return np.asarray(self.buffer, dtype=np.uint8).ravel()


@dataclass
class CameraImage:
    """Raw camera image as delivered by the platform camera or AR session."""

    format: ImageFormat
    width: int
    height: int
    planes: list[ImagePlane] = field(default_factory=list)


class ImageCaptureManager:
    """Converts raw camera images into RGB bitmaps ready for descriptor extraction."""

    def __init__(self, config: CaptureConfig | None = None):
        """Initialize capture manager.

        Args:
            config: Thumbnail and JPEG settings. Defaults to CaptureConfig().
        """
        self.config = config if config is not None else CaptureConfig()
        self.config.validate()

    def capture_frame_as_bitmap(self, image: CameraImage) -> npt.NDArray[np.uint8] | None:
        """Convert a camera image to an RGB bitmap.

        Args:
            image: Raw camera image.

        Returns:
            RGB array (H, W, 3), or None if the format is unsupported or
            conversion fails.
        """
        try:
            if image.format == ImageFormat.YUV_420_888:
                return self._convert_yuv420_to_rgb(image)
            if image.format == ImageFormat.NV21:
                return self._convert_nv21_to_rgb(image)
            logger.warning(f"Unsupported image format: {image.format}")
            return None
        except Exception:
            logger.error("Error capturing frame as bitmap", exc_info=True)
            return None

    async def capture_frame_as_bitmap_async(
        self, image: CameraImage
    ) -> npt.NDArray[np.uint8] | None:
        """Run capture_frame_as_bitmap on a worker thread."""
        return await asyncio.to_thread(self.capture_frame_as_bitmap, image)

    def _luma_plane(self, plane: ImagePlane, width: int, height: int) -> npt.NDArray[np.uint8]:
        row_stride = plane.row_stride or width
        data = plane.as_array()[: row_stride * height]
        return data.reshape(height, row_stride)[:, :width].ravel()

    def _convert_yuv420_to_rgb(self, image: CameraImage) -> npt.NDArray[np.uint8]:
        """Convert a three-plane YUV_420_888 image.

        Planar chroma (pixel stride 1) is packed as I420; interleaved chroma
        (pixel stride 2) is re-packed as NV21 (V before U).
        """
        if len(image.planes) < _YUV_PLANES:
            msg = f"YUV_420_888 needs 3 planes, got {len(image.planes)}"
            raise ValueError(msg)
        width, height = image.width, image.height
        if width % 2 or height % 2:
            msg = f"YUV_420_888 dimensions must be even, got {width}x{height}"
            raise ValueError(msg)

        y_plane, u_plane, v_plane = image.planes[:_YUV_PLANES]
        y = self._luma_plane(y_plane, width, height)

        chroma_count = (width // 2) * (height // 2)
        stride = u_plane.pixel_stride
        u = u_plane.as_array()[::stride][:chroma_count]
        v = v_plane.as_array()[::stride][:chroma_count]
        if u.size < chroma_count or v.size < chroma_count:
            msg = "Chroma planes are smaller than the image requires"
            raise ValueError(msg)

        if stride == _PLANAR_PIXEL_STRIDE:
            yuv = np.concatenate([y, u, v])
            code = cv2.COLOR_YUV2RGB_I420
        else:
            vu = np.empty(chroma_count * 2, dtype=np.uint8)
            vu[0::2] = v
            vu[1::2] = u
            yuv = np.concatenate([y, vu])
            code = cv2.COLOR_YUV2RGB_NV21

        rgb: npt.NDArray[np.uint8] = cv2.cvtColor(yuv.reshape(height * 3 // 2, width), code)
        return rgb

    def _convert_nv21_to_rgb(self, image: CameraImage) -> npt.NDArray[np.uint8]:
        """Convert a single-buffer NV21 image."""
        if not image.planes:
            msg = "NV21 image has no buffer"
            raise ValueError(msg)
        width, height = image.width, image.height
        expected = width * height * 3 // 2
        data = image.planes[0].as_array()
        if data.size < expected:
            msg = f"NV21 buffer too small: {data.size} < {expected}"
            raise ValueError(msg)

        rgb: npt.NDArray[np.uint8] = cv2.cvtColor(
            data[:expected].reshape(height * 3 // 2, width), cv2.COLOR_YUV2RGB_NV21
        )
        return rgb

    def create_thumbnail(
        self,
        bitmap: npt.NDArray[Any],
        max_width: int | None = None,
        max_height: int | None = None,
    ) -> npt.NDArray[Any]:
        """Scale a bitmap to fit within max_width x max_height, keeping aspect ratio.

        Smaller images are scaled up to the bounding box as well.

        Args:
            bitmap: Image array (H, W) or (H, W, C).
            max_width: Bounding width. Defaults to config.thumbnail_max_width.
            max_height: Bounding height. Defaults to config.thumbnail_max_height.

        Returns:
            Resized image.
        """
        max_w = max_width if max_width is not None else self.config.thumbnail_max_width
        max_h = max_height if max_height is not None else self.config.thumbnail_max_height

        h, w = bitmap.shape[:2]
        ratio = min(max_w / w, max_h / h)

        new_w = max(1, int(w * ratio))
        new_h = max(1, int(h * ratio))
        if (new_w, new_h) == (w, h):
            return bitmap

        # INTER_AREA for shrinking, bilinear for enlarging
        interpolation = cv2.INTER_AREA if ratio < 1 else cv2.INTER_LINEAR
        return cv2.resize(bitmap, (new_w, new_h), interpolation=interpolation)

    def load_bitmap(self, path: str | Path) -> npt.NDArray[np.uint8]:
        """Read an image file as an RGB bitmap.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file cannot be decoded.
        """
        path = Path(path)
        if not path.exists():
            msg = f"Image not found: {path}"
            raise FileNotFoundError(msg)

        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is None:
            msg = f"Could not decode image: {path}"
            raise ValueError(msg)

        rgb: npt.NDArray[np.uint8] = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
        return rgb

    def save_bitmap(self, bitmap: npt.NDArray[Any], path: str | Path) -> None:
        """Write an RGB bitmap as JPEG at the configured quality."""
        bgr = cv2.cvtColor(np.ascontiguousarray(bitmap), cv2.COLOR_RGB2BGR)
        ok = cv2.imwrite(str(path), bgr, [cv2.IMWRITE_JPEG_QUALITY, self.config.jpeg_quality])
        if not ok:
            msg = f"Could not write image: {path}"
            raise ValueError(msg)
