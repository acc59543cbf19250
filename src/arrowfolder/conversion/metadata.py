from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from arrowfolder.conversion.chunk_converter import ChunkResult
from arrowfolder.conversion.shard_writer import FEATURES
from arrowfolder.utils.file_ops import write_json_atomically
from arrowfolder.utils.logging import get_logger

DATASET_INFO_FILE_NAME = "dataset_info.json"
STATE_FILE_NAME = "state.json"


@dataclass
class SplitSummary:
    name: str
    num_samples: int
    num_bytes: int
    shard_files: list[str]
    num_skipped: int = 0
    label_counts: Counter = field(default_factory=Counter)

    @classmethod
    def from_chunk_results(cls, name: str, chunk_results: list[ChunkResult]) -> "SplitSummary":
        chunk_results = sorted(chunk_results, key=lambda result: result.chunk_id)
        label_counts = Counter()
        for result in chunk_results:
            label_counts.update(result.label_counts)
        return cls(
            name=name,
            num_samples=sum(result.num_samples for result in chunk_results),
            num_bytes=sum(result.num_bytes for result in chunk_results),
            shard_files=[result.file_name for result in chunk_results],
            num_skipped=sum(len(result.skipped_paths) for result in chunk_results),
            label_counts=label_counts,
        )


class MetadataWriter:
    """Writes the dataset descriptor and the run state to the output root once all splits are done."""

    def __init__(self, output_path: Path):
        self.output_path = output_path

    @staticmethod
    def features_to_dict() -> dict[str, dict[str, str]]:
        return {name: {"dtype": feature.dtype, "_type": "Value"} for name, feature in FEATURES.items()}

    def build_dataset_info(self, dataset_name: str, split_summaries: list[SplitSummary]) -> dict[str, Any]:
        label_names = sorted(set().union(*(summary.label_counts.keys() for summary in split_summaries)))
        return {
            "dataset_name": dataset_name,
            "dataset_type": "imagefolder",
            "format": "arrow",
            "features": self.features_to_dict(),
            "splits": {
                summary.name: {
                    "name": summary.name,
                    "num_examples": summary.num_samples,
                    "num_bytes": summary.num_bytes,
                    "num_shards": len(summary.shard_files),
                    "num_skipped": summary.num_skipped,
                    "label_counts": dict(sorted(summary.label_counts.items())),
                }
                for summary in split_summaries
            },
            "label_names": label_names,
            "num_samples": sum(summary.num_samples for summary in split_summaries),
        }

    @staticmethod
    def build_state(split_summaries: list[SplitSummary], run_settings: dict[str, Any]) -> dict[str, Any]:
        return {
            "_data_files": {
                summary.name: [{"filename": file_name} for file_name in summary.shard_files]
                for summary in split_summaries
            },
            "_type": "arrow",
            **run_settings,
        }

    def write(self, dataset_name: str, split_summaries: list[SplitSummary], run_settings: dict[str, Any]) -> None:
        """Writes `dataset_info.json` and `state.json`.

        Args:
            dataset_name (str): Name of the dataset.
            split_summaries (list[SplitSummary]): Summaries of all converted splits.
            run_settings (dict[str, Any]): Chunk size, thread count and the other settings of the run.
        """
        self.output_path.mkdir(parents=True, exist_ok=True)
        write_json_atomically(
            self.output_path / DATASET_INFO_FILE_NAME, self.build_dataset_info(dataset_name, split_summaries)
        )
        write_json_atomically(self.output_path / STATE_FILE_NAME, self.build_state(split_summaries, run_settings))
        get_logger().info(f"Metadata and {STATE_FILE_NAME} saved in {self.output_path}")
