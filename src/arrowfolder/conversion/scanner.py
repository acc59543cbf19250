import os
from pathlib import Path
from typing import Callable, Iterator

from arrowfolder.conversion.samples import Sample
from arrowfolder.exceptions import ScanError
from arrowfolder.utils.logging import get_logger

LabelFn = Callable[[Path], str]


def parent_dir_label(path: Path) -> str:
    """Returns the name of the directory that directly contains `path`."""
    return path.parent.name


class TreeScanner:
    """Recursively collects image files below a root directory.

    Unreadable entries are skipped (best effort) and recorded in `errors`;
    the scan itself never aborts because of them.

    Args:
        image_extension (str): Extension without leading dot. The match is case-sensitive.
        label_fn (LabelFn): Maps an image path to its label. Defaults to the parent directory name.
    """

    def __init__(self, image_extension: str, label_fn: LabelFn = parent_dir_label):
        self._suffix = f".{image_extension.lstrip('.')}"
        self._label_fn = label_fn
        self.errors: list[ScanError] = []

    def _on_walk_error(self, error: OSError) -> None:
        self._record_error(f"Skipping unreadable entry {error.filename}: {error.strerror}")

    def _record_error(self, message: str) -> None:
        scan_error = ScanError(message)
        self.errors.append(scan_error)
        get_logger().warning(str(scan_error))

    def scan(self, root: Path) -> Iterator[Sample]:
        """Lazily yields a `Sample` for every matching regular file below `root`.
        The yielded order follows the file system and must not be relied upon.
        Files that cannot be stat'ed or whose label is not valid UTF-8 are skipped and recorded in `errors`.
        """
        self.errors = []
        for dir_path, _, file_names in os.walk(root, onerror=self._on_walk_error):
            for file_name in file_names:
                path = Path(dir_path, file_name)
                if path.suffix != self._suffix:
                    continue
                try:
                    if not path.is_file():
                        continue
                except OSError as e:
                    self._on_walk_error(e)
                    continue
                label = self._label_fn(path)
                try:
                    label.encode("utf-8")
                except UnicodeEncodeError:
                    self._record_error(f"Skipping {path!r}: label {label!r} is not valid UTF-8")
                    continue
                yield Sample(path=path, label=label)
