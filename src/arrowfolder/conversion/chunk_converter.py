from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from arrowfolder.config.config import SampleReadErrorPolicy
from arrowfolder.conversion.chunking import Chunk
from arrowfolder.conversion.samples import Sample
from arrowfolder.conversion.shard_writer import ArrowShardWriter
from arrowfolder.exceptions import SampleReadError
from arrowfolder.utils.logging import get_logger


@dataclass
class ChunkResult:
    chunk_id: int
    file_name: str
    num_samples: int
    num_bytes: int
    skipped_paths: list[Path] = field(default_factory=list)
    label_counts: Counter = field(default_factory=Counter)


class ChunkConverter:
    """Turns one chunk into one shard file inside `split_output_path`."""

    def __init__(self, split_output_path: Path, sample_read_error_policy: SampleReadErrorPolicy):
        self.split_output_path = split_output_path
        self.sample_read_error_policy = sample_read_error_policy

    @staticmethod
    def read_sample(sample: Sample) -> bytes:
        try:
            image = sample.path.read_bytes()
        except OSError as e:
            raise SampleReadError(f"Could not read {sample.path}: {e}") from e
        if len(image) == 0:
            raise SampleReadError(f"Image file {sample.path} is empty.")
        return image

    def convert(self, chunk: Chunk) -> ChunkResult:
        """Reads the samples of `chunk` in order and writes them to the chunk's shard.

        Raises:
            SampleReadError: If a sample cannot be read and the policy is `fail`.
                No shard is written in that case.
            ShardWriteError: If the shard cannot be written.

        Returns:
            ChunkResult: Row count, size and skipped samples of the written shard.
        """
        images: list[bytes] = []
        labels: list[str] = []
        skipped_paths: list[Path] = []
        for sample in chunk.samples:
            try:
                image = self.read_sample(sample)
            except SampleReadError as e:
                if self.sample_read_error_policy == SampleReadErrorPolicy.FAIL:
                    raise
                get_logger().warning(f"Skipping sample in chunk {chunk.chunk_id} of split '{chunk.split}': {e}")
                skipped_paths.append(sample.path)
                continue
            # image and label are appended together, so both columns stay aligned
            images.append(image)
            labels.append(sample.label)

        batch = ArrowShardWriter.build_record_batch(images=images, labels=labels)
        shard_file_path = self.split_output_path / chunk.file_name
        num_bytes = ArrowShardWriter.write_record_batch(batch=batch, shard_file_path=shard_file_path)
        get_logger().info(f"Saved chunk {chunk.chunk_id} -> {shard_file_path}")

        return ChunkResult(
            chunk_id=chunk.chunk_id,
            file_name=chunk.file_name,
            num_samples=batch.num_rows,
            num_bytes=num_bytes,
            skipped_paths=skipped_paths,
            label_counts=Counter(labels),
        )
