import numpy as np
from numba import cuda

OUTPUT_CEILING = 255


@cuda.jit
def normalize_cumulative(cumulative, nbins, normalized):
    """normalized[i] = floor(cumulative[i] * 255 / cumulative[nbins - 1])"""
    i = cuda.grid(1)
    if i < nbins:
        total = np.int64(cumulative[nbins - 1])
        normalized[i] = np.int64(cumulative[i]) * OUTPUT_CEILING // total
