"""Image file collaborators: loading for Input, JPEG saving after a run."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from minimage.core.errors import FileError, ImageLoadError
from minimage.core.image import ImageState
from minimage.core.logging import get_logger

log = get_logger(__name__)

DEFAULT_PREFIX = "default"
DEFAULT_JPEG_QUALITY = 90


def load_image(path: Path) -> np.ndarray:
    """Decode an image file into an RGBA pixel buffer.

    Raises:
        ImageLoadError: Missing file, unreadable data or empty image.
    """
    path = Path(path)
    if not path.is_file():
        raise ImageLoadError(str(path), "file does not exist")

    try:
        with Image.open(path) as img:
            pixels = np.array(img.convert("RGBA"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError) as e:
        raise ImageLoadError(str(path), str(e)) from e

    if pixels.ndim != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ImageLoadError(str(path), "image has no pixels")
    return np.ascontiguousarray(pixels)


def output_file_name(image_id: int, prefix: str | None, default_prefix: str = DEFAULT_PREFIX) -> str:
    """Name of the saved file: ``{prefix}_{image_id + 1}.jpeg``."""
    if prefix is None or prefix.strip() == "":
        prefix = default_prefix
    return f"{prefix}_{image_id + 1}.jpeg"


class ImageSaver:
    """Write finished images as JPEG files."""

    def __init__(self, default_prefix: str = DEFAULT_PREFIX, quality: int = DEFAULT_JPEG_QUALITY) -> None:
        self.default_prefix = default_prefix
        self.quality = quality

    def save_all(self, images: Mapping[int, ImageState], directory: Path) -> list[Path]:
        """Save every initialized image into ``directory``.

        Args:
            images: Image id -> state of images that should be written
            directory: Destination, created if absent

        Returns:
            Paths written, ordered by image id

        Raises:
            FileError: If the directory cannot be created or a file written
        """
        directory = Path(directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileError(f"Cannot create output directory '{directory}': {e}") from e

        written: list[Path] = []
        for image_id in sorted(images):
            state = images[image_id]
            if state is None or state.pixels is None:
                log.warning(f"Skipping uninitialized image ID: {image_id}")
                continue

            target = directory / output_file_name(image_id, state.prefix, self.default_prefix)
            self.save_image(state.pixels, target)
            written.append(target)
        return written

    def save_image(self, pixels: np.ndarray, target: Path) -> None:
        try:
            Image.fromarray(np.ascontiguousarray(pixels)).convert("RGB").save(target, "JPEG", quality=self.quality)
        except OSError as e:
            raise FileError(f"Cannot write '{target}': {e}") from e
        log.info(f"Saved: {target}")
