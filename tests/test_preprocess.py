"""Tests for OpenCV page cleanup."""

import numpy as np
from PIL import Image

from vitaldoc.ocr.preprocess import binarize, denoise, prepare_for_ocr, to_grayscale
from vitaldoc.utils.config import PreprocessingConfig


class TestToGrayscale:
    """Tests for PIL to grayscale conversion."""

    def test_rgb_page(self, sample_page: Image.Image) -> None:
        gray = to_grayscale(sample_page)
        assert gray.ndim == 2
        assert gray.shape == (200, 300)
        assert gray.dtype == np.uint8

    def test_palette_image(self) -> None:
        image = Image.new("P", (20, 10))
        assert to_grayscale(image).shape == (10, 20)


class TestDenoise:
    """Tests for bilateral denoising."""

    def test_preserves_shape(self, sample_image: np.ndarray) -> None:
        result = denoise(sample_image)
        assert result.shape == sample_image.shape
        assert result.dtype == np.uint8


class TestBinarize:
    """Tests for thresholding."""

    def test_otsu_output_is_binary(self, sample_image: np.ndarray) -> None:
        result = binarize(sample_image)
        assert set(np.unique(result)) <= {0, 255}

    def test_adaptive_output_is_binary(self, sample_image: np.ndarray) -> None:
        result = binarize(sample_image, method="adaptive")
        assert set(np.unique(result)) <= {0, 255}

    def test_adaptive_even_block_size(self, sample_image: np.ndarray) -> None:
        result = binarize(sample_image, method="adaptive", block_size=30)
        assert result.shape == sample_image.shape


class TestPrepareForOCR:
    """Tests for the configured cleanup sequence."""

    def test_disabled_returns_input(self, sample_page: Image.Image) -> None:
        config = PreprocessingConfig(enabled=False)
        assert prepare_for_ocr(sample_page, config) is sample_page

    def test_full_pipeline(self, sample_page: Image.Image) -> None:
        result = prepare_for_ocr(sample_page, PreprocessingConfig())
        assert isinstance(result, Image.Image)
        assert result.mode == "L"
        assert result.size == sample_page.size
        assert set(np.unique(np.array(result))) <= {0, 255}

    def test_grayscale_only(self, sample_page: Image.Image) -> None:
        config = PreprocessingConfig(denoise_enabled=False, binarize_enabled=False)
        result = prepare_for_ocr(sample_page, config)
        assert result.mode == "L"
