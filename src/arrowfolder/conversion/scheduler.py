import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

import tqdm

from arrowfolder.conversion.chunk_converter import ChunkResult
from arrowfolder.conversion.chunking import Chunk
from arrowfolder.exceptions import ChunkFailure, RunFailure
from arrowfolder.utils.logging import get_logger

ConvertFn = Callable[[Chunk], ChunkResult]


class ChunkScheduler:
    """Runs the conversion of a split's chunks on a bounded pool of worker threads.

    At most `thread_count` conversions are active at any time. Chunks are admitted in
    ascending chunk_id order, and the submitting thread blocks while all slots are taken.
    After the first failed chunk no further chunks are admitted; chunks already running are
    drained and the collected failures are raised as a `RunFailure`.
    """

    def __init__(self, thread_count: int):
        if thread_count < 1:
            raise ValueError("thread_count must be >= 1")
        self.thread_count = thread_count

    def run(self, chunks: list[Chunk], convert_fn: ConvertFn, desc: str = "Converting chunks") -> list[ChunkResult]:
        """Converts all chunks and blocks until every admitted chunk has finished.

        Args:
            chunks (list[Chunk]): Chunks in ascending chunk_id order.
            convert_fn (ConvertFn): Conversion applied to each chunk in a worker thread.
            desc (str): Description of the progress bar.

        Raises:
            RunFailure: If at least one chunk failed.

        Returns:
            list[ChunkResult]: One result per chunk, ordered by chunk_id.
        """
        stop_event = threading.Event()
        slots = threading.BoundedSemaphore(self.thread_count)
        lock = threading.Lock()
        results: dict[int, ChunkResult] = {}
        failures: list[ChunkFailure] = []
        num_admitted = 0

        with tqdm.tqdm(total=len(chunks), desc=desc) as progress:

            def on_done(future: Future, chunk: Chunk):
                try:
                    error = future.exception()
                    with lock:
                        if error is not None:
                            failures.append(
                                ChunkFailure(
                                    split=chunk.split, chunk_id=chunk.chunk_id, file_name=chunk.file_name, error=error
                                )
                            )
                            stop_event.set()
                        else:
                            results[chunk.chunk_id] = future.result()
                        progress.update(1)
                    if error is not None:
                        get_logger().error(
                            f"Chunk {chunk.chunk_id} of split '{chunk.split}' failed: {error}. "
                            "No further chunks are admitted."
                        )
                finally:
                    slots.release()

            with ThreadPoolExecutor(max_workers=self.thread_count, thread_name_prefix="chunk-worker") as executor:
                for chunk in chunks:
                    slots.acquire()
                    if stop_event.is_set():
                        slots.release()
                        break
                    future = executor.submit(convert_fn, chunk)
                    num_admitted += 1
                    future.add_done_callback(lambda f, chunk=chunk: on_done(f, chunk))
                # leaving the executor context drains the in-flight conversions

        if failures:
            failures.sort(key=lambda failure: failure.chunk_id)
            raise RunFailure(failures=failures, num_not_admitted=len(chunks) - num_admitted)
        return [results[chunk_id] for chunk_id in sorted(results)]
