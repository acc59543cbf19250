import math
from dataclasses import dataclass

from arrowfolder.conversion.samples import Sample, SampleIndex

SHARD_FILE_EXTENSION = "arrow"


@dataclass(frozen=True)
class Chunk:
    split: str
    chunk_id: int
    num_chunks: int
    samples: tuple[Sample, ...]

    @property
    def file_name(self) -> str:
        return Chunking.get_shard_file_name(chunk_id=self.chunk_id, num_chunks=self.num_chunks)

    def __len__(self) -> int:
        return len(self.samples)


class Chunking:
    @staticmethod
    def get_num_chunks(num_samples: int, chunk_size: int) -> int:
        if chunk_size <= 0:
            raise ValueError("Chunk size must be greater than 0.")
        return math.ceil(num_samples / chunk_size)

    @staticmethod
    def _get_chunk_range(chunk_size: int, num_samples: int, chunk_id: int) -> list[int]:
        num_chunks = Chunking.get_num_chunks(num_samples=num_samples, chunk_size=chunk_size)
        if chunk_id < 0 or chunk_id >= num_chunks:
            raise ValueError(f"Chunk ID must be in [0, {num_chunks}), got {chunk_id}.")

        # chunk boundaries depend on the position only: [i * chunk_size, min((i + 1) * chunk_size, num_samples))
        start = chunk_id * chunk_size
        end = min(start + chunk_size, num_samples)
        return [start, end]

    @staticmethod
    def get_chunks(sample_index: SampleIndex, chunk_size: int) -> list[Chunk]:
        """Partitions the sample index into contiguous chunks of at most `chunk_size` samples.
        Chunks are returned in ascending chunk_id order; an empty index yields no chunks.
        """
        num_samples = len(sample_index)
        num_chunks = Chunking.get_num_chunks(num_samples=num_samples, chunk_size=chunk_size)
        chunks = []
        for chunk_id in range(num_chunks):
            start, end = Chunking._get_chunk_range(chunk_size=chunk_size, num_samples=num_samples, chunk_id=chunk_id)
            chunks.append(
                Chunk(
                    split=sample_index.split,
                    chunk_id=chunk_id,
                    num_chunks=num_chunks,
                    samples=sample_index[start:end],
                )
            )
        return chunks

    @staticmethod
    def get_shard_file_name(chunk_id: int, num_chunks: int, extension: str = SHARD_FILE_EXTENSION) -> str:
        return f"data-{chunk_id:05d}-of-{num_chunks:05d}.{extension}"
