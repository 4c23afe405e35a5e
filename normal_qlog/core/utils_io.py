"""Image I/O helpers for the converter.

Buffers handed to and returned from this module are float32 arrays of shape
``(height, width, channels)`` with samples normalised to ``[0, 1]``. OpenCV
handles the formats where bit depth matters (16-bit PNG/TIFF and float
EXR/HDR); Pillow handles the remaining 8-bit formats.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

# OpenCV only reads EXR when this is set before cv2 is first imported
os.environ.setdefault("OPENCV_IO_ENABLE_OPENEXR", "1")

import cv2
import numpy as np
from PIL import Image

LOGGER = logging.getLogger("normal_qlog.io")

OPENCV_EXTENSIONS = {".png", ".tif", ".tiff", ".exr", ".hdr"}
FLOAT_EXTENSIONS = {".exr", ".hdr"}
SIXTEEN_BIT_EXTENSIONS = {".png", ".tif", ".tiff"}


class ImageIOError(RuntimeError):
    """Base error for failures at the image file boundary."""

    operation = "accessing"

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        self.message = message
        super().__init__(f'ERROR {self.operation} "{self.path}" : {message}')


class DecodeError(ImageIOError):
    """Raised when an input image cannot be read."""

    operation = "reading"


class EncodeError(ImageIOError):
    """Raised when an output image cannot be written."""

    operation = "writing"


def ensure_dir(path: Path) -> Path:
    """Ensure that *path* exists and return it."""

    path.mkdir(parents=True, exist_ok=True)
    return path


def _normalise(array: np.ndarray) -> np.ndarray:
    """Convert decoded samples to float32 in ``[0, 1]`` with a channel axis."""

    if np.issubdtype(array.dtype, np.integer):
        scale = float(np.iinfo(array.dtype).max)
        result = array.astype(np.float32) / np.float32(scale)
    else:
        result = array.astype(np.float32)
    if result.ndim == 2:
        result = result[..., np.newaxis]
    return np.ascontiguousarray(result)


def _read_with_opencv(source: Path) -> np.ndarray:
    try:
        data = cv2.imread(str(source), cv2.IMREAD_UNCHANGED)
    except cv2.error as exc:
        raise DecodeError(source, f"OpenCV failed to decode image: {exc}") from exc
    if data is None:
        raise DecodeError(source, "OpenCV could not decode the file")

    LOGGER.debug("Decoded %s with OpenCV: shape=%s, dtype=%s", source.name, data.shape, data.dtype)
    array = _normalise(data)

    # OpenCV loads as BGR(A), convert to RGB(A)
    if array.shape[-1] == 3:
        array = cv2.cvtColor(array, cv2.COLOR_BGR2RGB)
    elif array.shape[-1] == 4:
        array = cv2.cvtColor(array, cv2.COLOR_BGRA2RGBA)
    return np.ascontiguousarray(array, dtype=np.float32)


def _read_with_pillow(source: Path) -> np.ndarray:
    try:
        with Image.open(source) as image:
            image.load()
            mode = image.mode
            if mode.startswith("I"):
                # 16/32-bit integer grayscale, Pillow widens it to int32
                data = np.asarray(image, dtype=np.float32) / np.float32(65535.0)
            else:
                if mode == "P":
                    image = image.convert("RGBA" if "transparency" in image.info else "RGB")
                elif mode not in {"L", "LA", "RGB", "RGBA"}:
                    image = image.convert("RGBA" if "A" in mode else "RGB")
                data = np.asarray(image)
    except (OSError, ValueError) as exc:
        raise DecodeError(source, str(exc)) from exc

    LOGGER.debug("Decoded %s with Pillow: mode=%s, size=%s", source.name, mode, data.shape[:2])
    return _normalise(data)


def read_image(path: Path | str) -> np.ndarray:
    """Read *path* into a float32 ``(H, W, C)`` buffer normalised to ``[0, 1]``."""

    source = Path(path)
    if not source.is_file():
        raise DecodeError(source, "file does not exist")
    if source.suffix.lower() in OPENCV_EXTENSIONS:
        return _read_with_opencv(source)
    return _read_with_pillow(source)


def _quantise(buffer: np.ndarray, dtype: type) -> np.ndarray:
    scale = float(np.iinfo(dtype).max)
    return np.rint(np.clip(buffer, 0.0, 1.0) * scale).astype(dtype)


def _write_with_opencv(buffer: np.ndarray, temp_path: Path, destination: Path, bit_depth: int) -> None:
    suffix = destination.suffix.lower()
    if suffix in FLOAT_EXTENSIONS:
        data = buffer.astype(np.float32)
        if suffix == ".hdr" and data.shape[-1] == 4:
            # Radiance HDR has no alpha channel
            data = data[..., :3]
    else:
        data = _quantise(buffer, np.uint16 if bit_depth == 16 else np.uint8)

    if data.shape[-1] == 1:
        data = data[..., 0]
    elif data.shape[-1] == 3:
        data = cv2.cvtColor(data, cv2.COLOR_RGB2BGR)
    elif data.shape[-1] == 4:
        data = cv2.cvtColor(data, cv2.COLOR_RGBA2BGRA)

    try:
        success = cv2.imwrite(str(temp_path), data)
    except cv2.error as exc:
        raise EncodeError(destination, f"OpenCV failed to encode image: {exc}") from exc
    if not success:
        raise EncodeError(destination, "OpenCV could not encode the file")


def _write_with_pillow(buffer: np.ndarray, temp_path: Path, destination: Path, image_format: str) -> None:
    data = _quantise(buffer, np.uint8)
    if data.shape[-1] == 1:
        data = data[..., 0]
    try:
        Image.fromarray(data).save(temp_path, format=image_format)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(destination, str(exc)) from exc


def write_image(buffer: np.ndarray, path: Path | str, *, bit_depth: int = 8) -> Path:
    """Write *buffer* to *path*, inferring the format from the extension.

    The file is written next to the destination first and moved into place
    once the encoder succeeded.
    """

    destination = Path(path)
    suffix = destination.suffix.lower()
    channels = buffer.shape[-1] if buffer.ndim == 3 else 1
    if channels not in (1, 3, 4):
        raise EncodeError(destination, f"cannot encode an image with {channels} channels")

    use_opencv = suffix in FLOAT_EXTENSIONS or (bit_depth == 16 and suffix in SIXTEEN_BIT_EXTENSIONS)
    image_format = Image.registered_extensions().get(suffix)
    if not use_opencv and image_format is None:
        raise EncodeError(destination, f"unsupported output format {suffix or '(no extension)'!r}")
    if bit_depth == 16 and not use_opencv:
        LOGGER.warning("%s does not support 16-bit output, writing 8-bit samples", suffix)

    try:
        ensure_dir(destination.parent)
    except OSError as exc:
        raise EncodeError(destination, str(exc)) from exc

    if buffer.ndim == 2:
        buffer = buffer[..., np.newaxis]
    temp_path = destination.with_name(f".{destination.stem}.tmp{destination.suffix}")
    try:
        if use_opencv:
            _write_with_opencv(buffer, temp_path, destination, bit_depth)
        else:
            _write_with_pillow(buffer, temp_path, destination, image_format)
        os.replace(temp_path, destination)
    except OSError as exc:
        raise EncodeError(destination, str(exc)) from exc
    finally:
        try:
            os.remove(temp_path)
        except FileNotFoundError:
            pass

    LOGGER.debug("Saved %s (%s channels, %s)", destination, channels, "float" if suffix in FLOAT_EXTENSIONS else f"{bit_depth}-bit")
    return destination
