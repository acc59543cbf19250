from dataclasses import dataclass
from enum import Enum
from operator import attrgetter
from pathlib import Path
from typing import Optional

from arrowfolder.config.config import ConversionConfig
from arrowfolder.conversion.chunk_converter import ChunkConverter
from arrowfolder.conversion.chunking import Chunking
from arrowfolder.conversion.metadata import MetadataWriter, SplitSummary
from arrowfolder.conversion.samples import SampleIndex
from arrowfolder.conversion.scanner import LabelFn, TreeScanner, parent_dir_label
from arrowfolder.conversion.scheduler import ChunkScheduler
from arrowfolder.exceptions import EmptyDatasetError, RunFailure
from arrowfolder.utils.logging import get_logger

TRAIN_SPLIT = "train"
VALIDATION_SPLIT = "validation"


class ConversionState(Enum):
    SCANNING = "Scanning"
    INDEXED = "Indexed"
    SHUFFLED = "Shuffled"
    SCHEDULING = "Scheduling"
    CONVERTING = "Converting"
    JOINED = "Joined"
    FINALIZING = "Finalizing"
    DONE = "Done"
    FAILED = "Failed"


@dataclass(frozen=True)
class SplitSource:
    name: str
    path: Optional[Path]
    required: bool


def get_split_sources(config: ConversionConfig) -> list[SplitSource]:
    return [
        SplitSource(name=TRAIN_SPLIT, path=config.train_path, required=True),
        SplitSource(name=VALIDATION_SPLIT, path=config.validation_path, required=False),
    ]


class ImageFolderConverter:
    """Converts the splits of an image folder one after another and writes the metadata at the end.

    Per split: scan -> index -> shuffle -> chunk -> convert chunks on a bounded pool -> join.
    Metadata is only written when every split has been converted without a failed chunk.
    """

    def __init__(self, config: ConversionConfig, label_fn: LabelFn = parent_dir_label):
        self.config = config
        self.label_fn = label_fn
        self.state: Optional[ConversionState] = None
        self.state_history: list[tuple[Optional[str], ConversionState]] = []

    @property
    def split_sources(self) -> list[SplitSource]:
        return get_split_sources(self.config)

    def _transition(self, state: ConversionState, split: Optional[str] = None) -> None:
        self.state = state
        self.state_history.append((split, state))
        prefix = f"[{split}] " if split is not None else ""
        get_logger().info(f"{prefix}{state.value}")

    def run(self) -> list[SplitSummary]:
        """Runs the whole conversion.

        Raises:
            EmptyDatasetError: If the training split contains no images.
            RunFailure: If any chunk could not be converted. No metadata is written in that case.

        Returns:
            list[SplitSummary]: Summaries of the converted splits.
        """
        split_summaries = []
        for split_source in self.split_sources:
            split_summary = self.convert_split(split_source)
            if split_summary is not None:
                split_summaries.append(split_summary)

        self._transition(ConversionState.FINALIZING)
        MetadataWriter(self.config.output_path).write(
            dataset_name=self.config.dataset_name,
            split_summaries=split_summaries,
            run_settings=self.config.to_state_dict(),
        )
        self._transition(ConversionState.DONE)
        return split_summaries

    def build_sample_index(self, split_source: SplitSource) -> SampleIndex:
        self._transition(ConversionState.SCANNING, split_source.name)
        scanner = TreeScanner(image_extension=self.config.image_extension, label_fn=self.label_fn)
        # file system order is arbitrary, the index always starts sorted by path
        samples = sorted(scanner.scan(split_source.path), key=attrgetter("path"))
        sample_index = SampleIndex(split=split_source.name, samples=samples)
        if scanner.errors:
            get_logger().warning(f"[{split_source.name}] Skipped {len(scanner.errors)} unreadable entries.")
        self._transition(ConversionState.INDEXED, split_source.name)
        return sample_index

    def convert_split(self, split_source: SplitSource) -> Optional[SplitSummary]:
        if split_source.path is None:
            if split_source.required:
                raise EmptyDatasetError(f"No path configured for mandatory split '{split_source.name}'.")
            get_logger().info(f"No path configured for split '{split_source.name}'. Skipping ...")
            return None

        sample_index = self.build_sample_index(split_source)
        if len(sample_index) == 0:
            if split_source.required:
                self._transition(ConversionState.FAILED, split_source.name)
                raise EmptyDatasetError(
                    f"Found no '*.{self.config.image_extension}' images for mandatory split "
                    f"'{split_source.name}' in {split_source.path}."
                )
            get_logger().warning(f"Split '{split_source.name}' contains no images. Skipping ...")
            return None

        if self.config.shuffle:
            sample_index.shuffle(seed=self.config.seed)
            self._transition(ConversionState.SHUFFLED, split_source.name)

        self._transition(ConversionState.SCHEDULING, split_source.name)
        chunks = Chunking.get_chunks(sample_index, chunk_size=self.config.chunk_size)
        split_output_path = self.config.output_path / split_source.name
        split_output_path.mkdir(parents=True, exist_ok=True)
        get_logger().info(
            f"Saving split '{split_source.name}' with {len(sample_index)} samples in {len(chunks)} chunks "
            f"to {split_output_path} ..."
        )

        converter = ChunkConverter(
            split_output_path=split_output_path, sample_read_error_policy=self.config.sample_read_error_policy
        )
        self._transition(ConversionState.CONVERTING, split_source.name)
        try:
            chunk_results = ChunkScheduler(thread_count=self.config.thread_count).run(
                chunks, convert_fn=converter.convert, desc=f"Converting {split_source.name}"
            )
        except RunFailure:
            self._transition(ConversionState.FAILED, split_source.name)
            raise
        self._transition(ConversionState.JOINED, split_source.name)

        return SplitSummary.from_chunk_results(name=split_source.name, chunk_results=chunk_results)
