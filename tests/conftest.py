"""Shared test fixtures for the vital-event document pipeline."""

from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

from vitaldoc.utils.config import AppConfig, FeatureFlags, LLMConfig


def make_completion(content: str | None) -> MagicMock:
    """Build an object shaped like an OpenAI chat completion."""
    response = MagicMock()
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response.choices = [choice]
    return response


def make_tesseract_data(words: list[tuple[str, float]]) -> dict[str, list]:
    """Build ``image_to_data`` output with a leading non-word block row."""
    n = len(words) + 1
    return {
        "text": [""] + [w for w, _ in words],
        "conf": [-1] + [c for _, c in words],
        "left": [0] + [10 + 60 * i for i in range(len(words))],
        "top": [0] * n,
        "width": [0] + [50] * len(words),
        "height": [0] + [20] * len(words),
        "line_num": [0] + [1] * len(words),
    }


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_page() -> Image.Image:
    """A white RGB page with a dark block, as loaded from an upload."""
    array = np.full((200, 300, 3), 255, dtype=np.uint8)
    array[80:120, 40:260] = 0
    return Image.fromarray(array)


@pytest.fixture
def image_file(tmp_path: Path, sample_page: Image.Image) -> Path:
    """A PNG certificate scan saved to disk."""
    path = tmp_path / "certificate.png"
    sample_page.save(path, format="PNG")
    return path


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def openai_client() -> MagicMock:
    """An OpenAI client stand-in answering with an empty JSON object."""
    client = MagicMock()
    client.chat.completions.create.return_value = make_completion("{}")
    return client


@pytest.fixture
def all_features() -> AppConfig:
    """Config with the master switch and every feature on."""
    return AppConfig(
        features=FeatureFlags(
            enabled=True,
            recognition=True,
            document_analysis=True,
            fraud_detection=True,
            classification=True,
            validation=True,
        ),
        llm=LLMConfig(api_key="sk-test"),
    )
