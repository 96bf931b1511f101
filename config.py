"""
Configuration constants for the MTG Card Synthesizer.
"""

# =============================================================================
# PATHS
# =============================================================================
# Filesystem artifact that must never be treated as a category
IGNORED_ENTRIES = {'.DS_Store'}

# =============================================================================
# IMAGE SETTINGS
# =============================================================================
# MobileNet input size (width == height)
IMAGE_SIZE = 224

# Clip mask size, matches scryfall "small" card thumbnails (146x204)
CLIP_HEIGHT = 204
CLIP_WIDTH = 146

# Extra transparent columns added to the left of the clip shape before
# stretching it back, tightens the clip slightly on the card art
CLIP_LEFT_PAD = 1

# Fully transparent BGRA, used for every padded/warped border
CLEAR_BACKGROUND = (0, 0, 0, 0)

# =============================================================================
# CAMERA SIMULATION PARAMETERS
# =============================================================================
# Scale per axis (independently sampled)
AFFINE_SCALE_MIN = 0.95
AFFINE_SCALE_MAX = 1.05

# Translation as a fraction of image width / height
TRANSLATE_X_MIN = -0.10
TRANSLATE_X_MAX = 0.10
TRANSLATE_Y_MIN = -0.05
TRANSLATE_Y_MAX = 0.05

# Rotation and shear in degrees
ROTATE_MIN = -3.0
ROTATE_MAX = 3.0
SHEAR_MIN = -3.0
SHEAR_MAX = 3.0

# =============================================================================
# BACKGROUND PARAMETERS
# =============================================================================
# Noise is centered on the starting value, so start from mid gray (BGRA)
BACKGROUND_GRAY = (127, 127, 127, 255)

# Gaussian noise sigma, sampled per channel so pixels get random colors
BACKGROUND_NOISE_SIGMA = 100

# =============================================================================
# BRIGHTNESS PARAMETERS
# =============================================================================
# Lightness multiplier (+-20%)
BRIGHTNESS_MIN = 0.8
BRIGHTNESS_MAX = 1.2

# =============================================================================
# PROCESSING OPTIONS
# =============================================================================
# Random seed for reproducibility (set to None for random each run)
RANDOM_SEED = None

# Save debug images for first N cards when a debug directory is given
DEBUG_SAVE_COUNT = 5

# =============================================================================
# OUTPUT FORMAT
# =============================================================================
# Intermediate stages stay lossless PNG (keeps alpha for compositing)
PNG_COMPRESSION = 4

# Final output is JPEG, about 10x smaller for faster training
JPEG_QUALITY = 80
