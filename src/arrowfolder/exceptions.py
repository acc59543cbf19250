from dataclasses import dataclass


class ConfigError(Exception):
    pass


class ScanError(Exception):
    pass


class EmptyDatasetError(Exception):
    pass


class SampleReadError(Exception):
    pass


class ShardWriteError(Exception):
    pass


class DatasetVerificationError(Exception):
    pass


@dataclass(frozen=True)
class ChunkFailure:
    split: str
    chunk_id: int
    file_name: str
    error: BaseException

    def __str__(self) -> str:
        return (
            f"split '{self.split}', chunk {self.chunk_id} ({self.file_name}): "
            f"{type(self.error).__name__}: {self.error}"
        )


class RunFailure(Exception):
    """Raised when at least one chunk of a split could not be converted.

    Args:
        failures (list[ChunkFailure]): One entry per failed chunk.
        num_not_admitted (int): Number of chunks that were never started because
            admission stopped after the first failure.
    """

    def __init__(self, failures: list[ChunkFailure], num_not_admitted: int = 0):
        self.failures = failures
        self.num_not_admitted = num_not_admitted
        lines = [str(failure) for failure in failures]
        if num_not_admitted > 0:
            lines.append(f"{num_not_admitted} chunk(s) were not admitted after the failure")
        super().__init__(f"{len(failures)} chunk(s) failed:\n" + "\n".join(lines))
