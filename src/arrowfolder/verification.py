import json
import re
from dataclasses import dataclass, field
from pathlib import Path

import pyarrow as pa

from arrowfolder.conversion.metadata import DATASET_INFO_FILE_NAME, STATE_FILE_NAME
from arrowfolder.conversion.shard_writer import ArrowShardWriter
from arrowfolder.exceptions import DatasetVerificationError
from arrowfolder.utils.file_ops import get_file_md5sum

SHARD_FILE_NAME_PATTERN = re.compile(r"^data-(\d+)-of-(\d+)\.arrow$")


@dataclass
class SplitVerificationResult:
    name: str
    num_shards: int = 0
    num_rows: int = 0
    checksums: dict[str, str] = field(default_factory=dict)


@dataclass
class DatasetVerificationReport:
    output_path: Path
    splits: list[SplitVerificationResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _load_json(path: Path) -> dict:
    if not path.is_file():
        raise DatasetVerificationError(f"Missing {path.name} in {path.parent}.")
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DatasetVerificationError(f"Cannot parse {path.name} in {path.parent}: {e}") from e
    if not isinstance(payload, dict):
        raise DatasetVerificationError(f"{path.name} in {path.parent} is not a JSON object.")
    return payload


def _get_data_files(state: dict) -> dict[str, list[str]]:
    try:
        return {
            split: [data_file["filename"] for data_file in data_files]
            for split, data_files in state.get("_data_files", {}).items()
        }
    except (AttributeError, KeyError, TypeError) as e:
        raise DatasetVerificationError(f"Malformed _data_files entry in {STATE_FILE_NAME}: {e!r}") from e


def _verify_shard_names(split: str, file_names: list[str], errors: list[str]) -> None:
    indices = []
    for file_name in file_names:
        match = SHARD_FILE_NAME_PATTERN.match(file_name)
        if match is None:
            errors.append(f"[{split}] Unexpected shard file name {file_name}.")
            continue
        chunk_id, num_chunks = int(match.group(1)), int(match.group(2))
        if num_chunks != len(file_names):
            errors.append(f"[{split}] {file_name} claims {num_chunks} shards, but {len(file_names)} are listed.")
        indices.append(chunk_id)
    if sorted(indices) != list(range(len(file_names))):
        errors.append(f"[{split}] Shard indices {sorted(indices)} are not 0..{len(file_names) - 1}.")


def _verify_shard(split: str, shard_file_path: Path, errors: list[str]) -> int:
    if not shard_file_path.is_file():
        errors.append(f"[{split}] Missing shard {shard_file_path.name}.")
        return 0
    try:
        table = ArrowShardWriter.read_table(shard_file_path)
    except (OSError, pa.ArrowException) as e:
        errors.append(f"[{split}] Cannot read shard {shard_file_path.name}: {e}")
        return 0
    if not table.schema.equals(ArrowShardWriter.schema, check_metadata=False):
        errors.append(f"[{split}] Shard {shard_file_path.name} has an unexpected schema: {table.schema}")
        return table.num_rows
    for column in table.columns:
        if len(column) != table.num_rows or column.null_count > 0:
            errors.append(f"[{split}] Shard {shard_file_path.name} has misaligned or missing column values.")
    return table.num_rows


def verify_dataset(output_path: Path, checksums: bool = False) -> DatasetVerificationReport:
    """Checks a converted dataset against its metadata documents.

    Args:
        output_path (Path): Output root of a conversion run.
        checksums (bool): If set, an MD5 checksum is computed for every shard.

    Raises:
        DatasetVerificationError: If one of the metadata documents is missing or malformed.

    Returns:
        DatasetVerificationReport: Per-split findings. `report.ok` is False if anything is inconsistent.
    """
    state = _load_json(output_path / STATE_FILE_NAME)
    dataset_info = _load_json(output_path / DATASET_INFO_FILE_NAME)
    data_files = _get_data_files(state)
    split_infos = dataset_info.get("splits", {})
    if not isinstance(split_infos, dict) or not all(isinstance(info, dict) for info in split_infos.values()):
        raise DatasetVerificationError(f"Malformed splits entry in {DATASET_INFO_FILE_NAME}.")
    report = DatasetVerificationReport(output_path=output_path)

    for split, file_names in data_files.items():
        result = SplitVerificationResult(name=split, num_shards=len(file_names))
        _verify_shard_names(split, file_names, report.errors)
        for file_name in file_names:
            shard_file_path = output_path / split / file_name
            result.num_rows += _verify_shard(split, shard_file_path, report.errors)
            if checksums and shard_file_path.is_file():
                result.checksums[file_name] = get_file_md5sum(shard_file_path)

        expected_num_rows = split_infos.get(split, {}).get("num_examples")
        if expected_num_rows != result.num_rows:
            report.errors.append(f"[{split}] Found {result.num_rows} rows, dataset info lists {expected_num_rows}.")
        report.splits.append(result)

    for split in split_infos:
        if split not in data_files:
            report.errors.append(f"[{split}] Split is described in {DATASET_INFO_FILE_NAME} but has no data files.")
    return report
