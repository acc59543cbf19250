import os
from pathlib import Path

import pyarrow as pa
from datasets import Features, Value

from arrowfolder.exceptions import ShardWriteError
from arrowfolder.utils.file_ops import temporary_path_for

IMAGE_COLUMN = "image"
LABEL_COLUMN = "label"

FEATURES = Features({IMAGE_COLUMN: Value("binary"), LABEL_COLUMN: Value("string")})


class ArrowShardWriter:
    schema: pa.Schema = FEATURES.arrow_schema

    @staticmethod
    def build_record_batch(images: list[bytes], labels: list[str]) -> pa.RecordBatch:
        """Builds the two-column record batch of one chunk.

        Args:
            images (list[bytes]): Raw file contents, one entry per sample.
            labels (list[str]): Labels, index-aligned with `images`.

        Raises:
            ValueError: If the two columns differ in length.

        Returns:
            pa.RecordBatch: Batch with a binary `image` and a string `label` column.
        """
        if len(images) != len(labels):
            raise ValueError(f"Column length mismatch: {len(images)} images vs. {len(labels)} labels.")
        return pa.RecordBatch.from_arrays(
            [pa.array(images, type=pa.binary()), pa.array(labels, type=pa.string())],
            schema=ArrowShardWriter.schema,
        )

    @staticmethod
    def write_record_batch(batch: pa.RecordBatch, shard_file_path: Path) -> int:
        """Writes `batch` as a single Arrow IPC file to `shard_file_path`.
        The file is first written under a temporary name and renamed once it is complete,
        so that a failed write leaves nothing behind under the shard's name.

        Raises:
            ShardWriteError: If the shard already exists or cannot be written.

        Returns:
            int: Size of the written shard in bytes.
        """
        if shard_file_path.exists():
            raise ShardWriteError(f"Shard {shard_file_path} already exists. Shards are never overwritten.")

        tmp_path = temporary_path_for(shard_file_path)
        try:
            with pa.OSFile(str(tmp_path), "wb") as sink:
                with pa.ipc.new_file(sink, batch.schema) as writer:
                    writer.write_batch(batch)
            os.replace(tmp_path, shard_file_path)
        except (OSError, pa.ArrowException) as e:
            tmp_path.unlink(missing_ok=True)
            raise ShardWriteError(f"Failed to write shard {shard_file_path}: {e}") from e
        return shard_file_path.stat().st_size

    @staticmethod
    def read_table(shard_file_path: Path) -> pa.Table:
        with pa.OSFile(str(shard_file_path), "rb") as source:
            return pa.ipc.open_file(source).read_all()
