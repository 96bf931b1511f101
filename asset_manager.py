"""
Asset Manager: Handles the card catalog and the clip mask for the synthesizer.
"""

import threading
from pathlib import Path
from typing import Dict, List, Optional
import cv2
import numpy as np

from config import (
    CLIP_HEIGHT,
    CLIP_WIDTH,
    CLIP_LEFT_PAD,
    IGNORED_ENTRIES
)
from errors import AssetLoadError, FilesystemError
from image_processor import ensure_bgra, resize_cover, resize_fill, extend_left


def _list_dir(directory: Path) -> List[Path]:
    """List entries of a directory sorted by name."""
    try:
        return sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise FilesystemError(f"Failed to read directory: {directory}") from exc


def build_path_catalog(images_dir: Path) -> Dict[str, List[Path]]:
    """
    Map every category (sub directory of images_dir) to its card files.

    Only immediate sub directories are categories and only their immediate
    files are listed. `.DS_Store` is never a category. Both levels are
    sorted by name so runs are reproducible across platforms.

    Args:
        images_dir: Input root, laid out as <images_dir>/<category>/<file>

    Returns:
        Dict of category name -> list of card paths (images_dir/category/file)
    """
    images_dir = Path(images_dir)
    print(f"📂 Scanning cards in: {images_dir}")

    if not images_dir.is_dir():
        raise FilesystemError(f"Images directory not found: {images_dir}")

    catalog: Dict[str, List[Path]] = {}
    for entry in _list_dir(images_dir):
        if entry.name in IGNORED_ENTRIES or not entry.is_dir():
            continue
        catalog[entry.name] = [p for p in _list_dir(entry) if p.is_file()]

    total = sum(len(paths) for paths in catalog.values())
    print(f"   Found {len(catalog)} categories, {total} cards")

    return catalog


class ClipMaskProvider:
    """
    Builds and caches the mask that clips the white corner tips off cards.

    The mask is computed on the first call to get() and the same read-only
    array is returned for the rest of the run.
    """

    def __init__(self, clip_path: Path,
                 height: int = CLIP_HEIGHT, width: int = CLIP_WIDTH):
        """
        Args:
            clip_path: Reference clip shape image (opaque where the card is cut)
            height: Mask height in pixels
            width: Mask width in pixels
        """
        self.clip_path = Path(clip_path)
        self.height = height
        self.width = width

        self._mask: Optional[np.ndarray] = None
        self._lock = threading.Lock()

        # Number of times the template was actually built (0 or 1)
        self.load_count = 0

    @property
    def loaded(self) -> bool:
        return self._mask is not None

    def get(self) -> np.ndarray:
        """
        Return the clip mask, building it on first use.

        Returns:
            Read-only BGRA mask (height x width)
        """
        if self._mask is None:
            with self._lock:
                if self._mask is None:
                    self._mask = self._build()
                    self.load_count += 1
        return self._mask

    def _load_template(self) -> np.ndarray:
        if not self.clip_path.is_file():
            raise AssetLoadError(f"Clip shape not found: {self.clip_path}")

        img = cv2.imread(str(self.clip_path), cv2.IMREAD_UNCHANGED)
        if img is None:
            raise AssetLoadError(f"Failed to load clip shape: {self.clip_path}")

        return ensure_bgra(img)

    def _build(self) -> np.ndarray:
        """
        Tweak the clip shape to fit card thumbnails slightly tighter.

        Process:
        1. Cover-resize the template to the mask size
        2. Pad CLIP_LEFT_PAD transparent columns on the left
        3. Stretch back to the exact mask size
        """
        print(f"✂️  Loading clip shape: {self.clip_path}")

        template = self._load_template()

        covered = resize_cover(template, self.width, self.height)
        extended = extend_left(covered, CLIP_LEFT_PAD)
        mask = resize_fill(extended, self.width, self.height)

        mask.setflags(write=False)
        return mask
