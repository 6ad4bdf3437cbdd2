from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from histeq.bins import uniform_bin_edges, validate_bin_edges
from histeq.errors import ConfigurationError

HISTOGRAM_STRATEGIES = ('naive', 'partitioned')
SCAN_STRATEGIES = ('inclusive', 'exclusive')
REMAP_SOURCES = ('original', 'luma')
MAX_GROUP_SIZE = 1024


def is_power_of_two(n: int) -> bool:
    return n > 0 and n & (n - 1) == 0


def next_power_of_two(n: int) -> int:
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


@dataclass
class EqualizationConfig:
    bins: int = 256
    bin_edges: Optional[Sequence[int]] = None
    histogram: str = 'partitioned'
    scan: str = 'inclusive'
    pad_scan: bool = True
    group_size: int = 256
    remap_source: str = 'original'
    profile: bool = False
    verbose: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self):
        if self.histogram not in HISTOGRAM_STRATEGIES:
            raise ConfigurationError(f"Unknown histogram strategy '{self.histogram}', "
                                     f"expected one of {HISTOGRAM_STRATEGIES}")
        if self.scan not in SCAN_STRATEGIES:
            raise ConfigurationError(f"Unknown scan strategy '{self.scan}', expected one of {SCAN_STRATEGIES}")
        if self.remap_source not in REMAP_SOURCES:
            raise ConfigurationError(f"Unknown remap source '{self.remap_source}', expected one of {REMAP_SOURCES}")
        if not 1 <= int(self.group_size) <= MAX_GROUP_SIZE:
            raise ConfigurationError(f"Group size must be between 1 and {MAX_GROUP_SIZE}, got {self.group_size}")

        # Resolving the edges validates bins / bin_edges as a side effect
        edges = self.edges()
        nbins = edges.size - 1
        if self.bin_edges is not None and self.bins != nbins:
            self.bins = nbins
        if self.scan == 'exclusive' and not self.pad_scan and not is_power_of_two(nbins):
            raise ConfigurationError(f"Exclusive scan needs a power of two bin count without padding, got {nbins}")
        if self.scan == 'exclusive' and nbins == 1:
            # The single entry of a one bin exclusive scan is 0, leaving nothing to normalize by
            raise ConfigurationError("Exclusive scan needs at least two bins")

    def edges(self) -> np.ndarray:
        """Boundary table for this run, B+1 int32 entries."""
        if self.bin_edges is not None:
            return validate_bin_edges(self.bin_edges)
        return uniform_bin_edges(self.bins)

    @property
    def scan_length(self) -> int:
        nbins = len(self.edges()) - 1
        if self.scan == 'exclusive' and self.pad_scan:
            return next_power_of_two(nbins)
        return nbins
