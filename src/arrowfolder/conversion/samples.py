from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

import numpy as np


@dataclass(frozen=True)
class Sample:
    path: Path
    label: str


class SampleIndex:
    """Holds all samples of one split in a fixed order.
    The order is arbitrary after scanning and only becomes meaningful through `shuffle`,
    which permutes the samples in-place without dropping or duplicating any of them.
    """

    def __init__(self, split: str, samples: Iterable[Sample]):
        self.split = split
        self._samples: list[Sample] = list(samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __getitem__(self, item: int | slice) -> Sample | tuple[Sample, ...]:
        if isinstance(item, slice):
            return tuple(self._samples[item])
        return self._samples[item]

    @property
    def label_names(self) -> list[str]:
        return sorted({sample.label for sample in self._samples})

    def shuffle(self, seed: Optional[int] = None) -> None:
        """Applies a uniformly random permutation to the samples.

        Args:
            seed (Optional[int], optional): Seed for the random generator. Defaults to None,
                in which case fresh entropy is drawn from the OS and no two runs share an order.
        """
        rng = np.random.default_rng(seed)
        rng.shuffle(self._samples)
