"""Page loading for recognition input.

Turns a saved upload (PNG, JPEG, multi-frame TIFF or PDF) into a list of
PIL page images.
"""

from pathlib import Path

from pdf2image import convert_from_path
from PIL import Image, ImageSequence

from vitaldoc.errors import InputInvalidError, InputNotFoundError
from vitaldoc.utils.logger import get_logger

logger = get_logger(__name__)

IMAGE_SUFFIXES = frozenset(
    {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".gif", ".webp"}
)


def is_recognizable(path: Path) -> bool:
    """Whether a file should go through OCR rather than be read as text."""
    suffix = Path(path).suffix.lower()
    return suffix == ".pdf" or suffix in IMAGE_SUFFIXES


def load_pages(path: Path, dpi: int = 300) -> list[Image.Image]:
    """Load every page of a document as an RGB image.

    Args:
        path: Path to an image or PDF file.
        dpi: Rendering resolution for PDF pages.

    Returns:
        Page images in document order.

    Raises:
        InputNotFoundError: If the file does not exist.
        InputInvalidError: If the file cannot be decoded as an image.
    """
    path = Path(path)
    if not path.is_file():
        raise InputNotFoundError(path)

    if path.suffix.lower() == ".pdf":
        pages = [page.convert("RGB") for page in convert_from_path(str(path), dpi=dpi)]
        logger.info("Rendered %d PDF pages from %s at %d DPI", len(pages), path, dpi)
        return pages

    try:
        with Image.open(path) as img:
            pages = [frame.convert("RGB") for frame in ImageSequence.Iterator(img)]
    except (OSError, SyntaxError) as exc:
        raise InputInvalidError(f"Unreadable image {path.name}: {exc}") from exc

    logger.debug("Loaded %d frame(s) from %s", len(pages), path)
    return pages
