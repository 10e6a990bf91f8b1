"""OpenCV cleanup of page images before recognition.

Scanned certificates are often stamped, yellowed or unevenly lit.
Grayscale, light denoising and binarization steady the Tesseract LSTM.
"""

import cv2
import numpy as np
from PIL import Image

from vitaldoc.utils.config import PreprocessingConfig
from vitaldoc.utils.logger import get_logger

logger = get_logger(__name__)


def to_grayscale(image: Image.Image) -> np.ndarray:
    """Convert a PIL image to a single-channel uint8 array."""
    array = np.array(image.convert("RGB"))
    return cv2.cvtColor(array, cv2.COLOR_RGB2GRAY)


def denoise(gray: np.ndarray) -> np.ndarray:
    """Edge-preserving bilateral filter."""
    return cv2.bilateralFilter(gray, 9, 75, 75)


def binarize(
    gray: np.ndarray, method: str = "otsu", block_size: int = 31, c: int = 10
) -> np.ndarray:
    """Threshold a grayscale image to pure black and white.

    Args:
        gray: Grayscale image.
        method: ``"otsu"`` for a global threshold or ``"adaptive"`` for a
            Gaussian local threshold (better on uneven lighting).
        block_size: Neighbourhood size for adaptive thresholding; forced odd.
        c: Constant subtracted from the adaptive mean.

    Returns:
        Binary image with values 0 or 255.
    """
    if method == "adaptive":
        if block_size % 2 == 0:
            block_size += 1
        return cv2.adaptiveThreshold(
            gray,
            255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY,
            block_size,
            c,
        )
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return binary


def prepare_for_ocr(image: Image.Image, config: PreprocessingConfig) -> Image.Image:
    """Apply the configured cleanup steps to one page.

    Args:
        image: Page image.
        config: Preprocessing switches.

    Returns:
        The processed page, or the input unchanged when disabled.
    """
    if not config.enabled:
        return image

    gray = to_grayscale(image)
    if config.denoise_enabled:
        gray = denoise(gray)
    if config.binarize_enabled:
        gray = binarize(
            gray,
            method=config.binarize_method,
            block_size=config.adaptive_block_size,
            c=config.adaptive_c,
        )
    logger.debug("Preprocessed page %dx%d", gray.shape[1], gray.shape[0])
    return Image.fromarray(gray)
