from pathlib import Path

import cv2
import numpy as np
import pytest


CARD_WIDTH = 146
CARD_HEIGHT = 204


def write_card(path: Path, color=(40, 90, 200), width=CARD_WIDTH, height=CARD_HEIGHT) -> Path:
    """Write a fake card thumbnail: white corner tips around a colored body."""
    card = np.full((height, width, 3), color, dtype=np.uint8)
    card[:12, :12] = 255
    card[:12, -12:] = 255
    card[-12:, :12] = 255
    card[-12:, -12:] = 255
    path.parent.mkdir(parents=True, exist_ok=True)
    assert cv2.imwrite(str(path), card)
    return path


@pytest.fixture
def clip_path(tmp_path: Path) -> Path:
    """Clip shape: opaque corner squares, transparent over the card body."""
    clip = np.zeros((CARD_HEIGHT, CARD_WIDTH, 4), dtype=np.uint8)
    for ys in (slice(0, 12), slice(-12, None)):
        for xs in (slice(0, 12), slice(-12, None)):
            clip[ys, xs] = (255, 255, 255, 255)
    path = tmp_path / "assets" / "card_clip.png"
    path.parent.mkdir(parents=True)
    assert cv2.imwrite(str(path), clip)
    return path


@pytest.fixture
def card_tree(tmp_path: Path) -> Path:
    """goblin/ (2 cards), dragon/ (1 card) and a stray .DS_Store."""
    root = tmp_path / "cards"
    write_card(root / "goblin" / "goblin-guide.jpg")
    write_card(root / "goblin" / "goblin-king.jpg", color=(10, 160, 60))
    write_card(root / "dragon" / "shivan-dragon.jpg", color=(20, 20, 180))
    (root / ".DS_Store").write_bytes(b"\x00\x00\x00\x01Bud1")
    return root
