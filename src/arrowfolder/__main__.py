#!/usr/bin/env python

from pathlib import Path
from typing import Optional

import click
import click_pathlib

from arrowfolder.api import FileExistencePolicy, convert_image_folder, verify_converted_dataset
from arrowfolder.config.config import ConversionConfig, SampleReadErrorPolicy, load_conversion_config
from arrowfolder.exceptions import DatasetVerificationError, EmptyDatasetError, RunFailure
from arrowfolder.utils.logging import get_logger

RUN_FAILURE_EXIT_CODE = 3
EMPTY_DATASET_EXIT_CODE = 4
VERIFICATION_FAILURE_EXIT_CODE = 5

file_existence_policy_option = click.option(
    "--file_existence_policy",
    type=click.Choice([policy.value for policy in FileExistencePolicy]),
    default=FileExistencePolicy.ERROR.value,
    help="Policy for handling an output folder that already contains a converted dataset.",
)


def _run_conversion(config: ConversionConfig, file_existence_policy: str) -> None:
    try:
        convert_image_folder(config=config, file_existence_policy=FileExistencePolicy(file_existence_policy))
    except RunFailure as e:
        get_logger(name="main").error(f"Conversion failed, no metadata was written. {e}")
        raise SystemExit(RUN_FAILURE_EXIT_CODE) from e
    except EmptyDatasetError as e:
        get_logger(name="main").error(str(e))
        raise SystemExit(EMPTY_DATASET_EXIT_CODE) from e


@click.group()
def main() -> None:
    pass


@main.command(name="convert")
@click.option(
    "--config_file_path",
    type=click_pathlib.Path(exists=True),
    required=True,
    help="Path to the YAML conversion config file.",
)
@file_existence_policy_option
def CMD_entry_point_convert(config_file_path: Path, file_existence_policy: str):
    """Converts an image folder into a sharded Arrow dataset as described by a YAML config file.

    Args:
        config_file_path (Path): Path to the YAML conversion config file.
        file_existence_policy (str): Policy for handling existing output.
    """
    config = load_conversion_config(config_file_path)
    _run_conversion(config, file_existence_policy)


@main.command(name="convert_folder")
@click.option("--train_path", type=click_pathlib.Path(), required=True, help="Root of the training split.")
@click.option("--output_path", type=click_pathlib.Path(), required=True, help="Output folder of the dataset.")
@click.option("--validation_path", type=click_pathlib.Path(), default=None, help="Root of the validation split.")
@click.option("--dataset_name", type=str, default="imagefolder", help="Name stored in dataset_info.json.")
@click.option("--chunk_size", type=int, default=49152, help="Maximum number of samples per shard.")
@click.option("--thread_count", type=int, default=8, help="Maximum number of chunks converted concurrently.")
@click.option("--image_extension", type=str, default="webp", help="Extension of the image files (case-sensitive).")
@click.option("--seed", type=int, default=None, help="Seed for shuffling. Random if not provided.")
@click.option("--no_shuffle", is_flag=True, default=False, help="Keep the scan order instead of shuffling.")
@click.option(
    "--sample_read_error_policy",
    type=click.Choice([policy.value for policy in SampleReadErrorPolicy]),
    default=SampleReadErrorPolicy.SKIP.value,
    help="Skip unreadable images or fail the chunk containing them.",
)
@file_existence_policy_option
def CMD_entry_point_convert_folder(
    train_path: Path,
    output_path: Path,
    validation_path: Optional[Path],
    dataset_name: str,
    chunk_size: int,
    thread_count: int,
    image_extension: str,
    seed: Optional[int],
    no_shuffle: bool,
    sample_read_error_policy: str,
    file_existence_policy: str,
):
    """Converts an image folder into a sharded Arrow dataset configured via command line options."""
    config = ConversionConfig(
        dataset_name=dataset_name,
        train_path=train_path,
        validation_path=validation_path,
        output_path=output_path,
        chunk_size=chunk_size,
        thread_count=thread_count,
        image_extension=image_extension,
        shuffle=not no_shuffle,
        seed=seed,
        sample_read_error_policy=SampleReadErrorPolicy(sample_read_error_policy),
    )
    _run_conversion(config, file_existence_policy)


@main.command(name="verify")
@click.option(
    "--output_path",
    type=click_pathlib.Path(exists=True, file_okay=False),
    required=True,
    help="Output folder of a conversion run.",
)
@click.option("--checksums", is_flag=True, default=False, help="Compute an MD5 checksum for every shard.")
def CMD_entry_point_verify(output_path: Path, checksums: bool):
    """Checks shards against dataset_info.json and state.json of a converted dataset."""
    try:
        report = verify_converted_dataset(output_path=output_path, checksums=checksums)
    except DatasetVerificationError as e:
        get_logger(name="main").error(str(e))
        raise SystemExit(VERIFICATION_FAILURE_EXIT_CODE) from e
    if not report.ok:
        raise SystemExit(VERIFICATION_FAILURE_EXIT_CODE)
    click.echo(f"Dataset in {output_path} is consistent.")


if __name__ == "__main__":
    main()
