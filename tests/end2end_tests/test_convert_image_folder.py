import json
import os
import sys
from collections import Counter
from pathlib import Path
from typing import Callable

import pytest

from arrowfolder.api import FileExistencePolicy, convert_image_folder
from arrowfolder.config.config import ConversionConfig, SampleReadErrorPolicy
from arrowfolder.conversion.metadata import DATASET_INFO_FILE_NAME, STATE_FILE_NAME
from arrowfolder.conversion.pipeline import ConversionState, ImageFolderConverter, get_split_sources
from arrowfolder.conversion.shard_writer import ArrowShardWriter
from arrowfolder.exceptions import EmptyDatasetError, RunFailure, ShardWriteError
from arrowfolder.utils.file_ops import get_file_md5sum


def read_split(output_path: Path, split: str) -> list[tuple[bytes, str]]:
    state = json.loads((output_path / STATE_FILE_NAME).read_text(encoding="utf-8"))
    rows = []
    for data_file in state["_data_files"][split]:
        table = ArrowShardWriter.read_table(output_path / split / data_file["filename"])
        rows.extend(zip(table.column("image").to_pylist(), table.column("label").to_pylist()))
    return rows


def test_three_labels_five_images_chunk_size_four(
    make_config: Callable[..., ConversionConfig], train_images: dict, output_path: Path
):
    convert_image_folder(make_config(chunk_size=4, thread_count=2, validation_path=None))

    shard_paths = sorted((output_path / "train").iterdir())
    assert [path.name for path in shard_paths] == [f"data-0000{i}-of-00004.arrow" for i in range(4)]
    tables = [ArrowShardWriter.read_table(path) for path in shard_paths]
    assert [table.num_rows for table in tables] == [4, 4, 4, 3]
    for table in tables:
        assert len(table.column("image")) == len(table.column("label"))

    state = json.loads((output_path / STATE_FILE_NAME).read_text(encoding="utf-8"))
    assert [data_file["filename"] for data_file in state["_data_files"]["train"]] == [p.name for p in shard_paths]
    assert state["chunk_size"] == 4
    assert state["thread_count"] == 2


def test_shards_hold_exactly_the_scanned_samples(
    make_config: Callable[..., ConversionConfig], train_images: dict, validation_images: dict, output_path: Path
):
    split_summaries = convert_image_folder(make_config(chunk_size=3))

    assert Counter(read_split(output_path, "train")) == Counter(train_images.values())
    assert Counter(read_split(output_path, "validation")) == Counter(validation_images.values())
    assert [summary.name for summary in split_summaries] == ["train", "validation"]

    dataset_info = json.loads((output_path / DATASET_INFO_FILE_NAME).read_text(encoding="utf-8"))
    assert dataset_info["dataset_name"] == "test-images"
    assert dataset_info["splits"]["train"]["num_examples"] == 15
    assert dataset_info["splits"]["validation"]["num_examples"] == 4
    assert dataset_info["label_names"] == ["cat", "dog", "fox"]


def test_seeded_runs_are_byte_identical(
    make_config: Callable[..., ConversionConfig], train_images: dict, tmp_path: Path
):
    checksums = []
    for run in range(2):
        output_path = tmp_path / f"run_{run}"
        convert_image_folder(make_config(output_path=output_path, seed=7, validation_path=None))
        checksums.append(
            {path.name: get_file_md5sum(path) for path in sorted((output_path / "train").iterdir())}
        )

    assert len(checksums[0]) == 4
    assert checksums[0] == checksums[1]


def test_thread_count_does_not_change_shards(
    make_config: Callable[..., ConversionConfig], train_images: dict, tmp_path: Path
):
    contents = []
    for thread_count in [1, 4]:
        output_path = tmp_path / f"threads_{thread_count}"
        convert_image_folder(
            make_config(output_path=output_path, thread_count=thread_count, shuffle=False, validation_path=None)
        )
        contents.append(
            {
                path.name: ArrowShardWriter.read_table(path).to_pydict()
                for path in sorted((output_path / "train").iterdir())
            }
        )

    assert contents[0] == contents[1]


def test_chunk_size_larger_than_dataset_gives_single_shard(
    make_config: Callable[..., ConversionConfig], train_images: dict, output_path: Path
):
    convert_image_folder(make_config(chunk_size=1000, validation_path=None))

    assert [path.name for path in (output_path / "train").iterdir()] == ["data-00000-of-00001.arrow"]


def test_unreadable_sample_is_skipped(
    make_config: Callable[..., ConversionConfig], train_images: dict, output_path: Path
):
    broken_path = sorted(train_images)[3]
    broken_path.write_bytes(b"")

    split_summaries = convert_image_folder(
        make_config(validation_path=None, sample_read_error_policy=SampleReadErrorPolicy.SKIP)
    )

    rows = read_split(output_path, "train")
    assert len(rows) == 14
    assert train_images[broken_path] not in rows
    assert all(len(image) > 0 for image, _ in rows)
    assert split_summaries[0].num_skipped == 1
    dataset_info = json.loads((output_path / DATASET_INFO_FILE_NAME).read_text(encoding="utf-8"))
    assert dataset_info["splits"]["train"]["num_examples"] == 14
    assert dataset_info["splits"]["train"]["num_skipped"] == 1


@pytest.mark.skipif(sys.platform != "linux", reason="requires a file system that accepts non UTF-8 names")
def test_label_directory_with_undecodable_name_is_left_out(
    make_config: Callable[..., ConversionConfig], image_root: Path, train_images: dict, output_path: Path
):
    undecodable_dir = os.fsencode(image_root / "train") + b"/d\xffg"
    os.mkdir(undecodable_dir)
    (Path(os.fsdecode(undecodable_dir)) / "000.webp").write_bytes(b"RIFFundecodable")

    convert_image_folder(make_config(validation_path=None))

    assert Counter(read_split(output_path, "train")) == Counter(train_images.values())
    assert (output_path / DATASET_INFO_FILE_NAME).is_file()


def test_unreadable_sample_fails_run_and_withholds_metadata(
    make_config: Callable[..., ConversionConfig], train_images: dict, output_path: Path
):
    broken_path = sorted(train_images)[3]
    broken_path.write_bytes(b"")
    config = make_config(validation_path=None, shuffle=False, sample_read_error_policy=SampleReadErrorPolicy.FAIL)
    converter = ImageFolderConverter(config)

    with pytest.raises(RunFailure) as exc_info:
        converter.run()

    failed_file_names = [failure.file_name for failure in exc_info.value.failures]
    assert len(failed_file_names) == 1
    assert not (output_path / "train" / failed_file_names[0]).exists()
    assert not (output_path / DATASET_INFO_FILE_NAME).exists()
    assert not (output_path / STATE_FILE_NAME).exists()
    assert not any(path.name.endswith(".tmp") for path in (output_path / "train").iterdir())
    assert converter.state == ConversionState.FAILED


def test_shard_write_failure_fails_run(
    make_config: Callable[..., ConversionConfig], train_images: dict, output_path: Path, monkeypatch
):
    original_write = ArrowShardWriter.write_record_batch

    def write_failing_third_shard(batch, shard_file_path: Path) -> int:
        if shard_file_path.name.startswith("data-00002"):
            raise ShardWriteError(f"No space left on device: {shard_file_path}")
        return original_write(batch, shard_file_path)

    monkeypatch.setattr(ArrowShardWriter, "write_record_batch", staticmethod(write_failing_third_shard))

    with pytest.raises(RunFailure) as exc_info:
        convert_image_folder(make_config(validation_path=None, thread_count=1))

    assert [failure.chunk_id for failure in exc_info.value.failures] == [2]
    assert exc_info.value.num_not_admitted == 1
    assert sorted(path.name for path in (output_path / "train").iterdir()) == [
        "data-00000-of-00004.arrow",
        "data-00001-of-00004.arrow",
    ]
    assert not (output_path / STATE_FILE_NAME).exists()


def test_empty_train_split_raises(make_config: Callable[..., ConversionConfig], image_root: Path):
    (image_root / "train" / "cat").mkdir(parents=True)

    with pytest.raises(EmptyDatasetError):
        convert_image_folder(make_config())


def test_empty_validation_split_is_skipped(
    make_config: Callable[..., ConversionConfig], train_images: dict, image_root: Path, output_path: Path
):
    (image_root / "validation").mkdir()

    split_summaries = convert_image_folder(make_config())

    assert [summary.name for summary in split_summaries] == ["train"]
    assert not (output_path / "validation").exists()
    state = json.loads((output_path / STATE_FILE_NAME).read_text(encoding="utf-8"))
    assert list(state["_data_files"]) == ["train"]


def test_state_transitions(make_config: Callable[..., ConversionConfig], train_images: dict, validation_images: dict):
    converter = ImageFolderConverter(make_config())

    converter.run()

    split_states = [
        ConversionState.SCANNING,
        ConversionState.INDEXED,
        ConversionState.SHUFFLED,
        ConversionState.SCHEDULING,
        ConversionState.CONVERTING,
        ConversionState.JOINED,
    ]
    assert converter.state_history == (
        [("train", state) for state in split_states]
        + [("validation", state) for state in split_states]
        + [(None, ConversionState.FINALIZING), (None, ConversionState.DONE)]
    )


@pytest.mark.parametrize(
    "file_existence_policy, expect_error, expect_conversion",
    [
        (FileExistencePolicy.ERROR, True, False),
        (FileExistencePolicy.SKIP, False, False),
        (FileExistencePolicy.OVERRIDE, False, True),
    ],
)
def test_file_existence_policy(
    make_config: Callable[..., ConversionConfig],
    train_images: dict,
    output_path: Path,
    file_existence_policy: FileExistencePolicy,
    expect_error: bool,
    expect_conversion: bool,
):
    convert_image_folder(make_config(validation_path=None, chunk_size=4))
    config = make_config(validation_path=None, chunk_size=5)

    if expect_error:
        with pytest.raises(ValueError):
            convert_image_folder(config, file_existence_policy=file_existence_policy)
        return
    split_summaries = convert_image_folder(config, file_existence_policy=file_existence_policy)

    shard_names = sorted(path.name for path in (output_path / "train").iterdir())
    if expect_conversion:
        assert split_summaries is not None
        assert shard_names == [f"data-0000{i}-of-00003.arrow" for i in range(3)]
    else:
        assert split_summaries is None
        assert shard_names == [f"data-0000{i}-of-00004.arrow" for i in range(4)]


def test_split_sources_follow_the_config(make_config: Callable[..., ConversionConfig], image_root: Path):
    split_sources = get_split_sources(make_config(validation_path=None))

    assert [(source.name, source.path, source.required) for source in split_sources] == [
        ("train", image_root / "train", True),
        ("validation", None, False),
    ]
