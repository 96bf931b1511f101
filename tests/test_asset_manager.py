from pathlib import Path

import numpy as np
import pytest

from asset_manager import build_path_catalog, ClipMaskProvider
from config import CLIP_HEIGHT, CLIP_WIDTH
from errors import AssetLoadError, FilesystemError

from conftest import write_card


def test_catalog_maps_categories_to_files(card_tree: Path):
    catalog = build_path_catalog(card_tree)

    assert set(catalog) == {"goblin", "dragon"}
    assert catalog["goblin"] == [
        card_tree / "goblin" / "goblin-guide.jpg",
        card_tree / "goblin" / "goblin-king.jpg",
    ]
    assert catalog["dragon"] == [card_tree / "dragon" / "shivan-dragon.jpg"]


def test_catalog_ignores_ds_store_even_as_directory(tmp_path: Path):
    root = tmp_path / "cards"
    write_card(root / "elf" / "llanowar.jpg")
    (root / ".DS_Store").mkdir()
    write_card(root / ".DS_Store" / "junk.jpg")

    catalog = build_path_catalog(root)

    assert list(catalog) == ["elf"]


def test_catalog_is_sorted_and_not_recursive(tmp_path: Path):
    root = tmp_path / "cards"
    for name in ("c.jpg", "a.jpg", "b.jpg"):
        write_card(root / "zombie" / name)
    write_card(root / "zombie" / "nested" / "deep.jpg")
    write_card(root / "angel" / "serra.jpg")

    catalog = build_path_catalog(root)

    assert list(catalog) == ["angel", "zombie"]
    assert [p.name for p in catalog["zombie"]] == ["a.jpg", "b.jpg", "c.jpg"]


def test_catalog_missing_root(tmp_path: Path):
    with pytest.raises(FilesystemError):
        build_path_catalog(tmp_path / "missing")


def test_catalog_root_is_a_file(tmp_path: Path):
    path = tmp_path / "cards.txt"
    path.write_text("not a directory")
    with pytest.raises(FilesystemError):
        build_path_catalog(path)


def test_clip_mask_built_once(clip_path: Path):
    provider = ClipMaskProvider(clip_path)
    assert not provider.loaded

    masks = [provider.get() for _ in range(5)]

    assert provider.load_count == 1
    assert all(mask is masks[0] for mask in masks)


def test_clip_mask_shape_and_read_only(clip_path: Path):
    mask = ClipMaskProvider(clip_path).get()

    assert mask.shape == (CLIP_HEIGHT, CLIP_WIDTH, 4)
    assert mask.dtype == np.uint8
    with pytest.raises(ValueError):
        mask[0, 0, 3] = 0


def test_clip_mask_keeps_corners_opaque(clip_path: Path):
    mask = ClipMaskProvider(clip_path).get()

    assert mask[2, 3, 3] > 200
    assert mask[-3, -3, 3] > 200
    assert mask[CLIP_HEIGHT // 2, CLIP_WIDTH // 2, 3] == 0


def test_clip_mask_missing_template(tmp_path: Path):
    provider = ClipMaskProvider(tmp_path / "nope.png")
    with pytest.raises(AssetLoadError):
        provider.get()
    assert provider.load_count == 0


def test_clip_mask_corrupt_template(tmp_path: Path):
    path = tmp_path / "card_clip.png"
    path.write_bytes(b"definitely not a png")
    with pytest.raises(AssetLoadError):
        ClipMaskProvider(path).get()
