"""
Image Processor: Core image manipulation functions for the card synthesizer.

This module contains all the per-card processing stages:
- Corner clipping with the cached clip mask (destination-out blend)
- Random camera perspective (affine: scale, translate, rotate, shear)
- Noisy background synthesis
- Background compositing and brightness modulation

Stages exchange encoded buffers (bytes). Every stage decodes its input with
OpenCV, works on the numpy matrix and re-encodes. Intermediate buffers are
lossless BGRA PNG so transparency survives until the final JPEG encode.
"""

import numbers
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Type

import cv2
import numpy as np

from config import (
    IMAGE_SIZE, CLEAR_BACKGROUND,
    AFFINE_SCALE_MIN, AFFINE_SCALE_MAX,
    TRANSLATE_X_MIN, TRANSLATE_X_MAX,
    TRANSLATE_Y_MIN, TRANSLATE_Y_MAX,
    ROTATE_MIN, ROTATE_MAX,
    SHEAR_MIN, SHEAR_MAX,
    BACKGROUND_GRAY, BACKGROUND_NOISE_SIGMA,
    BRIGHTNESS_MIN, BRIGHTNESS_MAX,
    PNG_COMPRESSION, JPEG_QUALITY
)
from errors import (
    CardSynthError, FilesystemError, ClipError,
    TransformError, SynthesisError, CompositeError
)


# =============================================================================
# CODEC HELPERS
# =============================================================================

def decode_image(buffer: bytes, flags: int,
                 error_cls: Type[CardSynthError], source: str = "buffer") -> np.ndarray:
    """
    Decode an encoded image buffer into a numpy matrix.

    Args:
        buffer: Encoded image bytes (PNG, JPEG, ...)
        flags: cv2.IMREAD_* flags
        error_cls: Stage error raised when the buffer is not a valid image
        source: Description of the buffer for the error message

    Returns:
        Decoded image (uint8 numpy array)
    """
    if not buffer:
        raise error_cls(f"Empty image data: {source}")

    try:
        image = cv2.imdecode(np.frombuffer(buffer, dtype=np.uint8), flags)
    except cv2.error as exc:
        raise error_cls(f"Failed to decode image: {source}") from exc

    if image is None:
        raise error_cls(f"Failed to decode image: {source}")

    return image


def encode_png(image: np.ndarray, error_cls: Type[CardSynthError]) -> bytes:
    """Encode an image as lossless PNG (alpha preserved)."""
    ok, buffer = cv2.imencode('.png', image, [cv2.IMWRITE_PNG_COMPRESSION, PNG_COMPRESSION])
    if not ok:
        raise error_cls("Failed to encode PNG")
    return buffer.tobytes()


def encode_jpeg(image: np.ndarray, quality: int = JPEG_QUALITY) -> bytes:
    """Encode the final image as JPEG (no alpha, much smaller than PNG)."""
    ok, buffer = cv2.imencode('.jpg', image, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise CompositeError("Failed to encode JPEG")
    return buffer.tobytes()


def ensure_bgra(image: np.ndarray) -> np.ndarray:
    """
    Convert a decoded image to 8-bit BGRA.

    Grayscale and BGR inputs get a fully opaque alpha channel.
    16-bit images are scaled down to 8-bit.
    """
    if image.dtype == np.uint16:
        image = (image / 257).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    return image


def premultiply(image: np.ndarray) -> np.ndarray:
    """
    Multiply BGR by alpha (float32 result).

    Resampling must happen on premultiplied color, otherwise the color of
    fully transparent pixels bleeds into the edges.
    """
    result = image.astype(np.float32)
    result[:, :, :3] *= result[:, :, 3:4] / 255.0
    return result


def unpremultiply(image: np.ndarray) -> np.ndarray:
    """Divide premultiplied BGR by alpha and return 8-bit BGRA."""
    alpha = np.clip(image[:, :, 3:4], 0, 255)
    color = np.divide(image[:, :, :3] * 255.0, alpha,
                      out=np.zeros_like(image[:, :, :3]), where=alpha > 0)

    result = np.concatenate([np.clip(color, 0, 255), alpha], axis=2)
    return np.round(result).astype(np.uint8)


# =============================================================================
# RESIZE HELPERS
# =============================================================================

def resize_fill(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Stretch image to exactly width x height, ignoring aspect ratio."""
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LANCZOS4)


def resize_cover(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Resize image to cover width x height while preserving aspect ratio.

    Process:
    1. Scale so both sides are at least the target size
    2. Center crop the overflow

    Args:
        image: Input image (any channel count)
        width: Target width
        height: Target height

    Returns:
        Image of exactly width x height
    """
    h, w = image.shape[:2]
    scale = max(width / w, height / h)

    new_w = max(width, int(round(w * scale)))
    new_h = max(height, int(round(h * scale)))

    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LANCZOS4)

    x_offset = (new_w - width) // 2
    y_offset = (new_h - height) // 2

    return resized[y_offset:y_offset + height, x_offset:x_offset + width]


def resize_contain(image: np.ndarray, width: int, height: int,
                   background: Tuple[int, int, int, int] = CLEAR_BACKGROUND) -> np.ndarray:
    """
    Resize BGRA image to fit inside width x height while preserving aspect ratio.

    Process:
    1. Calculate scale to fit image within target
    2. Resize using LANCZOS4
    3. Create background canvas and center resized image

    Args:
        image: Input image (BGRA)
        width: Target canvas width
        height: Target canvas height
        background: BGRA color of the padding (transparent by default)

    Returns:
        Centered image on a width x height BGRA canvas
    """
    h, w = image.shape[:2]
    scale = min(width / w, height / h)

    new_w = max(1, min(width, int(round(w * scale))))
    new_h = max(1, min(height, int(round(h * scale))))

    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LANCZOS4)

    canvas = np.full((height, width, 4), background, dtype=image.dtype)

    x_offset = (width - new_w) // 2
    y_offset = (height - new_h) // 2

    canvas[y_offset:y_offset + new_h, x_offset:x_offset + new_w] = resized

    return canvas


def extend_left(image: np.ndarray, pixels: int,
                background: Tuple[int, int, int, int] = CLEAR_BACKGROUND) -> np.ndarray:
    """Pad the left side of a BGRA image with background-colored columns."""
    return cv2.copyMakeBorder(image, 0, 0, pixels, 0,
                              cv2.BORDER_CONSTANT, value=background)


# =============================================================================
# CORNER CLIPPING
# =============================================================================

def destination_out(image: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """
    Erase image coverage wherever the mask has content ("dest-out" blend).

    The mask is centered on the image. Color channels are untouched, only
    alpha is reduced: alpha_out = alpha_image * (1 - alpha_mask).

    Args:
        image: Card image (BGRA, uint8)
        mask: Clip mask (BGRA, uint8), not larger than the image

    Returns:
        New BGRA image with the masked regions made transparent
    """
    h, w = image.shape[:2]
    mask_h, mask_w = mask.shape[:2]

    if mask_h > h or mask_w > w:
        raise ClipError(
            f"Image {w}x{h} is smaller than clip mask {mask_w}x{mask_h}"
        )

    x_offset = (w - mask_w) // 2
    y_offset = (h - mask_h) // 2

    result = image.copy()
    region = result[y_offset:y_offset + mask_h, x_offset:x_offset + mask_w, 3].astype(np.float32)
    mask_alpha = mask[:, :, 3].astype(np.float32) / 255.0

    region = region * (1.0 - mask_alpha)
    result[y_offset:y_offset + mask_h, x_offset:x_offset + mask_w, 3] = \
        np.clip(np.round(region), 0, 255).astype(np.uint8)

    return result


def clip_image(path: Path, mask: np.ndarray, size: int = IMAGE_SIZE) -> bytes:
    """
    Tight clip of a card thumbnail, discarding the white corner tips.

    The clipped card is then contained in a transparent size x size canvas so
    random placement in the next stage does not cut it off.

    Args:
        path: Source card image
        mask: Clip mask from ClipMaskProvider
        size: Output canvas size

    Returns:
        BGRA PNG buffer (size x size)
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FilesystemError(f"Failed to read card: {path}") from exc

    image = ensure_bgra(decode_image(data, cv2.IMREAD_UNCHANGED, ClipError, str(path)))

    clipped = destination_out(image, mask)
    framed = unpremultiply(resize_contain(premultiply(clipped), size, size))

    return encode_png(framed, ClipError)


# =============================================================================
# CAMERA PERSPECTIVE
# =============================================================================

@dataclass(frozen=True)
class CameraParams:
    """One random draw of the camera affine parameters."""
    scale_x: float
    scale_y: float
    translate_x: float  # fraction of width
    translate_y: float  # fraction of height
    rotate: float       # degrees
    shear: float        # degrees


def sample_camera_params() -> CameraParams:
    """Draw independent camera parameters from the configured ranges."""
    return CameraParams(
        scale_x=np.random.uniform(AFFINE_SCALE_MIN, AFFINE_SCALE_MAX),
        scale_y=np.random.uniform(AFFINE_SCALE_MIN, AFFINE_SCALE_MAX),
        translate_x=np.random.uniform(TRANSLATE_X_MIN, TRANSLATE_X_MAX),
        translate_y=np.random.uniform(TRANSLATE_Y_MIN, TRANSLATE_Y_MAX),
        rotate=np.random.uniform(ROTATE_MIN, ROTATE_MAX),
        shear=np.random.uniform(SHEAR_MIN, SHEAR_MAX),
    )


def build_camera_matrix(params: CameraParams, width: int, height: int) -> np.ndarray:
    """
    Build the 2x3 affine matrix for cv2.warpAffine.

    Scale, shear and rotation are applied about the image center, then the
    image is translated by the given fraction of its size.

    Args:
        params: Camera parameters
        width: Image width in pixels
        height: Image height in pixels

    Returns:
        2x3 float64 affine matrix
    """
    cx, cy = width / 2.0, height / 2.0

    to_origin = np.array([[1, 0, -cx], [0, 1, -cy], [0, 0, 1]], dtype=np.float64)
    scale = np.array([[params.scale_x, 0, 0], [0, params.scale_y, 0], [0, 0, 1]], dtype=np.float64)

    shear = np.deg2rad(params.shear)
    shear_m = np.array([[1, np.tan(shear), 0], [0, 1, 0], [0, 0, 1]], dtype=np.float64)

    # Same orientation as cv2.getRotationMatrix2D (positive = counter-clockwise)
    angle = np.deg2rad(params.rotate)
    cos_a, sin_a = np.cos(angle), np.sin(angle)
    rotate = np.array([[cos_a, sin_a, 0], [-sin_a, cos_a, 0], [0, 0, 1]], dtype=np.float64)

    back = np.array([
        [1, 0, cx + params.translate_x * width],
        [0, 1, cy + params.translate_y * height],
        [0, 0, 1]
    ], dtype=np.float64)

    matrix = back @ rotate @ shear_m @ scale @ to_origin
    return matrix[:2]


def randomize_camera(buffer: bytes, params: Optional[CameraParams] = None) -> bytes:
    """
    Randomize card position and camera angle in the frame.

    Border pixels exposed by the warp are fully transparent, so nothing
    bleeds into the background compositing step.

    Args:
        buffer: Clipped card (PNG buffer)
        params: Camera parameters, None to draw new random ones

    Returns:
        Warped BGRA PNG buffer with the input dimensions
    """
    image = ensure_bgra(decode_image(buffer, cv2.IMREAD_UNCHANGED, TransformError, "clipped card"))

    if params is None:
        params = sample_camera_params()

    h, w = image.shape[:2]
    matrix = build_camera_matrix(params, w, h)

    warped = cv2.warpAffine(
        premultiply(image), matrix, (w, h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=CLEAR_BACKGROUND
    )

    return encode_png(unpremultiply(warped), TransformError)


# =============================================================================
# BACKGROUND
# =============================================================================

def add_noise(image: np.ndarray, sigma: float = BACKGROUND_NOISE_SIGMA) -> np.ndarray:
    """
    Add Gaussian noise sampled independently per channel per pixel.

    Per-channel sampling produces random colored speckle instead of gray grain.
    """
    noise = np.random.normal(0, sigma, image.shape).astype(np.float32)
    noisy = image.astype(np.float32) + noise
    return np.clip(noisy, 0, 255).astype(np.uint8)


def make_noisy_background(size: int = IMAGE_SIZE,
                          sigma: float = BACKGROUND_NOISE_SIGMA) -> bytes:
    """
    Create a unique random background for every card.

    Starts from mid gray so the noise is not biased toward dark or bright.

    Args:
        size: Canvas width and height
        sigma: Noise standard deviation

    Returns:
        Opaque 3-channel PNG buffer (size x size)
    """
    if not isinstance(size, numbers.Integral) or isinstance(size, bool) or size <= 0:
        raise SynthesisError(f"Invalid background size: {size!r}")

    size = int(size)
    canvas = np.full((size, size, 4), BACKGROUND_GRAY, dtype=np.uint8)
    image = decode_image(encode_png(canvas, SynthesisError), cv2.IMREAD_COLOR,
                         SynthesisError, "background canvas")

    return encode_png(add_noise(image, sigma), SynthesisError)


# =============================================================================
# COMPOSITING
# =============================================================================

def sample_brightness() -> float:
    """Draw a lightness multiplier from the configured range."""
    return float(np.random.uniform(BRIGHTNESS_MIN, BRIGHTNESS_MAX))


def composite_over(foreground: np.ndarray, background: np.ndarray) -> np.ndarray:
    """
    Composite a BGRA foreground "over" an opaque background.

    Args:
        foreground: Card (BGRA, uint8)
        background: Opaque background (BGR or BGRA, uint8)

    Returns:
        Opaque composited image (BGR, uint8)
    """
    if foreground.shape[:2] != background.shape[:2]:
        raise CompositeError(
            f"Foreground {foreground.shape[1]}x{foreground.shape[0]} does not match "
            f"background {background.shape[1]}x{background.shape[0]}"
        )

    alpha = foreground[:, :, 3:4].astype(np.float32) / 255.0
    fg = foreground[:, :, :3].astype(np.float32)
    bg = background[:, :, :3].astype(np.float32)

    merged = fg * alpha + bg * (1.0 - alpha)

    return np.clip(np.round(merged), 0, 255).astype(np.uint8)


def modulate_brightness(image: np.ndarray, factor: float) -> np.ndarray:
    """
    Scale image lightness (CIE L*) by factor.

    Multiplicative, so black stays black and chroma is left alone.
    """
    lab = cv2.cvtColor(image.astype(np.float32) / 255.0, cv2.COLOR_BGR2Lab)
    lab[:, :, 0] = np.clip(lab[:, :, 0] * factor, 0, 100)
    bgr = cv2.cvtColor(lab, cv2.COLOR_Lab2BGR)
    return np.clip(np.round(bgr * 255.0), 0, 255).astype(np.uint8)


def add_background(buffer: bytes, background: Optional[bytes] = None,
                   brightness: Optional[float] = None) -> bytes:
    """
    Overlay processed card onto a noisy background and modulate brightness.

    Args:
        buffer: Warped card (BGRA PNG buffer)
        background: Background PNG buffer, None to synthesize a new one
        brightness: Lightness multiplier, None for random (+-20%)

    Returns:
        Final JPEG buffer
    """
    if background is None:
        background = make_noisy_background()

    foreground = ensure_bgra(decode_image(buffer, cv2.IMREAD_UNCHANGED, CompositeError, "card"))
    backdrop = decode_image(background, cv2.IMREAD_COLOR, CompositeError, "background")

    merged = composite_over(foreground, backdrop)

    if brightness is None:
        brightness = sample_brightness()

    return encode_jpeg(modulate_brightness(merged, brightness))


# =============================================================================
# FULL PIPELINE
# =============================================================================

@dataclass
class CardStages:
    """Encoded output of every pipeline stage for one card."""
    clipped: bytes
    camera: bytes
    background: bytes
    final: bytes


def synthesize_card(path: Path, mask: np.ndarray) -> CardStages:
    """
    Run the full pipeline on one card.

    clip corners -> random camera -> noisy background -> composite + brightness

    Any stage error propagates to the caller.
    """
    clipped = clip_image(path, mask)
    camera = randomize_camera(clipped)
    background = make_noisy_background()
    final = add_background(camera, background)

    return CardStages(clipped=clipped, camera=camera, background=background, final=final)


if __name__ == "__main__":
    # Quick test of individual stages
    print("Testing image processor functions...")

    background = decode_image(make_noisy_background(), cv2.IMREAD_COLOR, SynthesisError)
    print(f"Background: {background.shape}, mean: {background.mean():.1f}")

    params = sample_camera_params()
    print(f"Camera params: {params}")
    print(f"Camera matrix:\n{build_camera_matrix(params, IMAGE_SIZE, IMAGE_SIZE)}")

    card = np.full((204, 146, 4), (30, 60, 200, 255), dtype=np.uint8)
    framed = resize_contain(card, IMAGE_SIZE, IMAGE_SIZE)
    final = add_background(randomize_camera(encode_png(framed, TransformError)))
    decoded = decode_image(final, cv2.IMREAD_UNCHANGED, CompositeError)
    print(f"Final: {decoded.shape}, {len(final)} bytes")

    print("\n✅ Image processor test passed!")
