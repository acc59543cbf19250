from pathlib import Path
from typing import Callable

import pytest

from arrowfolder.config.config import ConversionConfig

LABELS = ["cat", "dog", "fox"]


def create_image_tree(
    split_root: Path, labels: list[str], num_images_per_label: int, extension: str = "webp"
) -> dict[Path, tuple[bytes, str]]:
    """Writes fake images with unique content to `<split_root>/<label>/<n>.<extension>`."""
    images = {}
    for label in labels:
        label_dir = split_root / label
        label_dir.mkdir(parents=True, exist_ok=True)
        for i in range(num_images_per_label):
            image_path = label_dir / f"{i:03d}.{extension}"
            content = b"RIFF" + f"{split_root.name}/{label}/{i}".encode("utf-8") + b"WEBPVP8 " + bytes([i % 256]) * i
            image_path.write_bytes(content)
            images[image_path] = (content, label)
    return images


@pytest.fixture
def image_root(tmp_path: Path) -> Path:
    return tmp_path / "images"


@pytest.fixture
def train_images(image_root: Path) -> dict[Path, tuple[bytes, str]]:
    # 3 labels x 5 images = 15 samples
    return create_image_tree(image_root / "train", LABELS, num_images_per_label=5)


@pytest.fixture
def validation_images(image_root: Path) -> dict[Path, tuple[bytes, str]]:
    return create_image_tree(image_root / "validation", LABELS[:2], num_images_per_label=2)


@pytest.fixture
def output_path(tmp_path: Path) -> Path:
    return tmp_path / "arrow"


@pytest.fixture
def make_config(image_root: Path, output_path: Path) -> Callable[..., ConversionConfig]:
    def _make_config(**kwargs) -> ConversionConfig:
        settings = dict(
            dataset_name="test-images",
            train_path=image_root / "train",
            validation_path=image_root / "validation",
            output_path=output_path,
            chunk_size=4,
            thread_count=2,
            image_extension="webp",
        )
        settings.update(kwargs)
        return ConversionConfig(**settings)

    return _make_config


@pytest.fixture
def image_tree_factory() -> Callable[..., dict[Path, tuple[bytes, str]]]:
    return create_image_tree
