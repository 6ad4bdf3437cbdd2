import numpy as np

from histeq.errors import ConfigurationError

INTENSITY_LEVELS = 256
MAX_BINS = 256


def uniform_bin_edges(bins):
    """Boundary table of `bins` equal-width bins covering [0, 256)."""
    bins = int(bins)
    if bins <= 0 or bins > MAX_BINS:
        raise ConfigurationError(f"Bin count must be between 1 and {MAX_BINS}, got {bins}")
    if INTENSITY_LEVELS % bins != 0:
        raise ConfigurationError(f"Bin count must divide {INTENSITY_LEVELS} for uniform bins, got {bins}")
    width = INTENSITY_LEVELS // bins
    return np.arange(0, INTENSITY_LEVELS + 1, width, dtype=np.int32)


def validate_bin_edges(edges):
    """
    Check a caller supplied boundary table and return it as a contiguous int32 array.

    Parameters:
    -----------
    edges : array-like
        B+1 strictly increasing boundaries, first 0 and last 256

    Returns:
    --------
    edges : ndarray (int32)
    """
    edges = np.ascontiguousarray(edges, dtype=np.int64)
    if edges.ndim != 1 or edges.size < 2:
        raise ConfigurationError("Bin edges must be a 1-D sequence with at least two entries")
    if edges.size - 1 > MAX_BINS:
        raise ConfigurationError(f"At most {MAX_BINS} bins are supported, got {edges.size - 1}")
    if edges[0] != 0 or edges[-1] != INTENSITY_LEVELS:
        raise ConfigurationError(f"Bin edges must start at 0 and end at {INTENSITY_LEVELS}")
    if np.any(np.diff(edges) <= 0):
        raise ConfigurationError("Bin edges must be strictly increasing")
    return edges.astype(np.int32)
