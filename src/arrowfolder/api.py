#!/usr/bin/env python

import shutil
from enum import Enum
from pathlib import Path
from typing import Optional

from arrowfolder.config.config import ConversionConfig
from arrowfolder.conversion.metadata import DATASET_INFO_FILE_NAME, STATE_FILE_NAME, SplitSummary
from arrowfolder.conversion.pipeline import ImageFolderConverter, get_split_sources
from arrowfolder.conversion.scanner import LabelFn, parent_dir_label
from arrowfolder.utils.logging import get_logger
from arrowfolder.verification import DatasetVerificationReport, verify_dataset


class FileExistencePolicy(Enum):
    SKIP = "skip"
    ERROR = "error"
    OVERRIDE = "override"


def _existing_outputs(config: ConversionConfig) -> list[Path]:
    candidates = [
        config.output_path / DATASET_INFO_FILE_NAME,
        config.output_path / STATE_FILE_NAME,
    ]
    for split_source in get_split_sources(config):
        split_output_path = config.output_path / split_source.name
        if split_output_path.is_dir() and any(split_output_path.iterdir()):
            candidates.append(split_output_path)
    return [path for path in candidates if path.exists()]


def enforce_file_existence_policy(existing_paths: list[Path], file_existence_policy: FileExistencePolicy) -> bool:
    """Enforces the file existence policy. Function returns True, if processing should be stopped. Otherwise False.

    Args:
        existing_paths (list[Path]): Outputs of a previous run that are already on disk.
        file_existence_policy (FileExistencePolicy): The file existence policy.

    Raises:
        ValueError: Raised if the file existence policy is unknown or the policy requires to raise a ValueError.

    Returns:
        bool: True if processing should be stopped, otherwise False.
    """
    paths_str = ", ".join(str(path) for path in existing_paths)
    if file_existence_policy == FileExistencePolicy.SKIP:
        get_logger(name="main").warning(f"Output already exists at {paths_str}. Skipping ...")
        return True
    elif file_existence_policy == FileExistencePolicy.OVERRIDE:
        get_logger(name="main").warning(f"Output already exists at {paths_str}. Overriding it.")
        for path in existing_paths:
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
        return False
    elif file_existence_policy == FileExistencePolicy.ERROR:
        raise ValueError(f"Output already exists at {paths_str}. Delete it or specify different output folder.")
    else:
        raise ValueError(f"Unknown file existence policy: {file_existence_policy}")


def convert_image_folder(
    config: ConversionConfig,
    file_existence_policy: FileExistencePolicy = FileExistencePolicy.ERROR,
    label_fn: LabelFn = parent_dir_label,
) -> Optional[list[SplitSummary]]:
    """Converts an image folder into a sharded Arrow dataset.
    Every split is written to `<output_path>/<split>/data-<i>-of-<total>.arrow`, followed by
    `dataset_info.json` and `state.json` in `<output_path>` once all splits succeeded.

    Args:
        config (ConversionConfig): Settings of the run.
        file_existence_policy (FileExistencePolicy): Policy to apply when the output folder already holds
            a converted dataset. Defaults to FileExistencePolicy.ERROR.
        label_fn (LabelFn): Maps an image path to its label. Defaults to the parent directory name.

    Raises:
        EmptyDatasetError: If the training split contains no images.
        RunFailure: If any chunk failed. Metadata is not written in that case.

    Returns:
        Optional[list[SplitSummary]]: Summaries of the converted splits, None if the run was skipped.
    """
    existing_paths = _existing_outputs(config)
    if existing_paths:
        stop_process = enforce_file_existence_policy(existing_paths, file_existence_policy)
        if stop_process:
            return None

    get_logger(name="main").info(
        f"Converting image folder {config.train_path} to {config.output_path} "
        f"(chunk_size={config.chunk_size}, thread_count={config.thread_count}) ..."
    )
    converter = ImageFolderConverter(config, label_fn=label_fn)
    split_summaries = converter.run()
    get_logger(name="main").info(f"Dataset saved successfully in {config.output_path}")
    return split_summaries


def verify_converted_dataset(output_path: Path, checksums: bool = False) -> DatasetVerificationReport:
    """Verifies shards and metadata of a converted dataset and logs every finding.

    Args:
        output_path (Path): Output root of a conversion run.
        checksums (bool): If set, MD5 checksums of all shards are part of the report.

    Returns:
        DatasetVerificationReport: The verification report.
    """
    report = verify_dataset(output_path=output_path, checksums=checksums)
    for split in report.splits:
        get_logger(name="main").info(f"[{split.name}] {split.num_shards} shards, {split.num_rows} rows")
        for file_name, checksum in split.checksums.items():
            get_logger(name="main").info(f"[{split.name}] {file_name} md5={checksum}")
    for error in report.errors:
        get_logger(name="main").error(error)
    return report
