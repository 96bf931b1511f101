"""
MTG Card Synthesizer - Main Pipeline

Turns clean scryfall card thumbnails into faux real-world photos by:
1. Indexing every card per category (sub directory)
2. Clipping the white corner tips off each card
3. Randomizing the camera perspective
4. Compositing onto a unique noisy background
5. Randomizing brightness and saving as JPEG

Usage:
    python dataset_generator.py --images_dir cards --output_dir synth --clip_path card_clip.png
    python dataset_generator.py --images_dir cards --output_dir synth --clip_path card_clip.png --limit 100
    python dataset_generator.py --images_dir cards --output_dir synth --clip_path card_clip.png --debug_dir debug
"""

import argparse
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import numpy as np
from tqdm import tqdm

from config import RANDOM_SEED, DEBUG_SAVE_COUNT
from asset_manager import build_path_catalog, ClipMaskProvider
from errors import CardSynthError, ConfigError, FilesystemError, ImageStageError
from image_processor import synthesize_card, CardStages


class DatasetGenerator:
    """
    Main generation pipeline for synthetic card photos.

    Workflow:
    1. Index: scan <images_dir>/<category>/<file>
    2. Loop: for each category, for each card, in catalog order:
       a. Clip corners with the cached clip mask
       b. Random camera affine (scale, translate, rotate, shear)
       c. Noisy background + composite + brightness
       d. Save JPEG to <output_dir>/<category>/<basename>
    3. Output mirrors the input category structure

    The first failing card aborts the run unless continue_on_error is set,
    in which case stage errors are recorded and the card is skipped.
    """

    def __init__(self, images_dir: Path, output_dir: Path,
                 clip_path: Optional[Path] = None,
                 seed: Optional[int] = RANDOM_SEED,
                 continue_on_error: bool = False,
                 debug_dir: Optional[Path] = None,
                 debug_count: int = DEBUG_SAVE_COUNT,
                 clip_provider: Optional[ClipMaskProvider] = None):
        """
        Initialize the dataset generator.

        Args:
            images_dir: Input root with one sub directory per category
            output_dir: Output root, created if missing
            clip_path: Reference clip shape image (required unless clip_provider is given)
            seed: Random seed for reproducibility (None = random each run)
            continue_on_error: Skip cards that fail instead of aborting the run
            debug_dir: If set, save intermediate images for the first debug_count cards
            debug_count: Number of cards to save debug images for
            clip_provider: Shared clip mask provider (a new one is built from clip_path otherwise)
        """
        self.images_dir = Path(images_dir)
        self.output_dir = Path(output_dir)
        self.continue_on_error = continue_on_error
        self.debug_dir = Path(debug_dir) if debug_dir is not None else None
        self.debug_count = debug_count

        if seed is not None:
            np.random.seed(seed)

        if clip_provider is None:
            if clip_path is None:
                raise ConfigError("A clip shape path or clip provider is required.")
            clip_provider = ClipMaskProvider(clip_path)
        self.clip_provider = clip_provider

        # Statistics
        self.processed_count = 0
        self.error_count = 0
        self.errors: List[Tuple[Path, str]] = []
        self.written: List[Path] = []

    def _create_output_dir(self, directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(f"Failed to create directory: {directory}") from exc

    def _get_output_path(self, category: str, card_path: Path) -> Path:
        """
        Map a card to <output_dir>/<category>/<basename>.

        The category directory is created on demand.
        """
        out_subdir = self.output_dir / category
        self._create_output_dir(out_subdir)
        return out_subdir / card_path.name

    def _save_bytes(self, path: Path, data: bytes) -> None:
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise FilesystemError(f"Failed to write: {path}") from exc

    def _save_debug_images(self, index: int, category: str, card_path: Path,
                           stages: CardStages) -> None:
        """
        Save intermediate images for debugging and analysis.

        Debug Images Saved:
        1. 01_clipped.png: corners clipped, contained in the canvas
        2. 02_camera.png: random camera affine applied
        3. 03_background.png: noisy background
        4. 04_final.jpg: composited + brightness (same as the output file)
        """
        debug_subdir = self.debug_dir / f"{index:04d}_{category}_{card_path.stem}"
        self._create_output_dir(debug_subdir)

        self._save_bytes(debug_subdir / "01_clipped.png", stages.clipped)
        self._save_bytes(debug_subdir / "02_camera.png", stages.camera)
        self._save_bytes(debug_subdir / "03_background.png", stages.background)
        self._save_bytes(debug_subdir / "04_final.jpg", stages.final)

    def process_card(self, index: int, category: str, card_path: Path) -> Path:
        """
        Synthesize one card and write it to the output tree.

        Args:
            index: Sequential card index for the run (used for debug output)
            category: Category (sub directory) name
            card_path: Source card image

        Returns:
            Path of the written output file
        """
        stages = synthesize_card(card_path, self.clip_provider.get())

        if self.debug_dir is not None and index < self.debug_count:
            self._save_debug_images(index, category, card_path, stages)

        out_path = self._get_output_path(category, card_path)
        self._save_bytes(out_path, stages.final)
        self.written.append(out_path)

        return out_path

    def run(self, limit: Optional[int] = None) -> dict:
        """
        Run the complete generation pipeline.

        Args:
            limit: Maximum number of cards to process (None = all)

        Returns:
            Summary dict with processed/error counts, elapsed time and written output paths
        """
        print("=" * 60)
        print("🚀 MTG Card Synthesizer")
        print("=" * 60)

        self._create_output_dir(self.output_dir)

        catalog = build_path_catalog(self.images_dir)

        # Load the clip mask up front, a missing template aborts before any output
        self.clip_provider.get()

        start_time = time.time()
        index = 0

        for category, card_paths in catalog.items():
            if limit is not None and index >= limit:
                break

            print(f"\n🃏 Set: {category}")
            if limit is not None:
                card_paths = card_paths[:limit - index]

            for card_path in tqdm(card_paths, desc=category, unit="card"):
                try:
                    self.process_card(index, category, card_path)
                    self.processed_count += 1
                except (ImageStageError, FilesystemError) as e:
                    if not self.continue_on_error:
                        raise
                    self.error_count += 1
                    self.errors.append((card_path, str(e)))
                index += 1

        elapsed = time.time() - start_time
        self._print_summary(len(catalog), elapsed)

        return {
            "categories": len(catalog),
            "processed": self.processed_count,
            "errors": self.error_count,
            "elapsed": elapsed,
            "outputs": list(self.written),
        }

    def _print_summary(self, categories: int, elapsed: float) -> None:
        print()
        print("=" * 60)
        print("📊 Generation Complete!")
        print("=" * 60)
        print(f"   Categories:       {categories}")
        print(f"   Processed:        {self.processed_count}")
        print(f"   Errors:           {self.error_count}")
        if self.processed_count > 0:
            print(f"   Time elapsed:     {elapsed:.1f}s ({elapsed/self.processed_count:.2f}s/card)")
        print(f"   Output directory: {self.output_dir}")

        if self.errors:
            print("\n⚠️  Errors encountered:")
            for path, err in self.errors[:10]:  # Show first 10 errors
                print(f"   - {path}: {err}")
            if len(self.errors) > 10:
                print(f"   ... and {len(self.errors) - 10} more errors")


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse command line options.

    Raises ConfigError before any I/O if --images_dir, --output_dir or
    --clip_path is missing.
    """
    parser = argparse.ArgumentParser(
        description="Synthesize real-world looking training photos from clean card thumbnails"
    )
    parser.add_argument(
        "--images_dir", type=Path, default=None,
        help="Input directory with one sub directory per category (required)"
    )
    parser.add_argument(
        "--output_dir", type=Path, default=None,
        help="Output directory, mirrors the input categories (required)"
    )
    parser.add_argument(
        "--clip_path", type=Path, default=None,
        help="Clip shape image used to cut card corners (required)"
    )
    parser.add_argument(
        "--limit", "-l", type=int, default=None,
        help="Maximum number of cards to process (default: all)"
    )
    parser.add_argument(
        "--seed", "-s", type=int, default=RANDOM_SEED,
        help=f"Random seed for reproducibility (default: {RANDOM_SEED})"
    )
    parser.add_argument(
        "--continue_on_error", action="store_true",
        help="Skip cards that fail to process instead of aborting the run"
    )
    parser.add_argument(
        "--debug_dir", type=Path, default=None,
        help=f"Save intermediate images for the first {DEBUG_SAVE_COUNT} cards to this directory"
    )

    args = parser.parse_args(argv)

    if not args.images_dir:
        raise ConfigError("--images_dir not specified.")
    if not args.output_dir:
        raise ConfigError("--output_dir not specified.")
    if not args.clip_path:
        raise ConfigError("--clip_path not specified.")
    if args.limit is not None and args.limit < 0:
        raise ConfigError("--limit must be >= 0.")

    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for card synthesis.

    Output:
    - <output_dir>/<category>/<basename> : synthetic JPEG per source card
    - <debug_dir>/<nnnn>_<category>_<card>/ : intermediate stages (if --debug_dir)
    """
    try:
        args = parse_arguments(argv)
        generator = DatasetGenerator(
            images_dir=args.images_dir,
            output_dir=args.output_dir,
            clip_path=args.clip_path,
            seed=args.seed,
            continue_on_error=args.continue_on_error,
            debug_dir=args.debug_dir,
        )
        generator.run(limit=args.limit)
    except CardSynthError as e:
        print(f"Error: {e}")
        return 1

    print("😈")
    return 0


if __name__ == "__main__":
    sys.exit(main())
