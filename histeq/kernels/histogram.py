import numpy as np
from numba import cuda

from histeq.bins import MAX_BINS


@cuda.jit(device=True)
def bin_of(value, edges, nbins):
    # Bins are contiguous, so the first upper edge above value is the only match
    for b in range(nbins):
        if value < edges[b + 1]:
            return b
    return nbins - 1


@cuda.jit
def histogram_naive(luma, stride, n_pixels, edges, nbins, counts):
    """One global atomic increment per pixel. `counts` must be zeroed by the caller."""
    p = cuda.grid(1)
    if p < n_pixels:
        b = bin_of(luma[p * stride], edges, nbins)
        cuda.atomic.add(counts, b, 1)


@cuda.jit
def histogram_partitioned(luma, stride, n_pixels, edges, nbins, counts):
    """
    Privatized histogram: each group counts into shared memory, then merges.

    Parameters:
    -----------
    luma : device array (uint8)
        Reduced samples; pixel p lives at luma[p * stride]
    stride : int
        Channel count of the reduced buffer
    n_pixels : int
        Number of logical workers doing useful work
    edges : device array (int32)
        Bin boundary table, nbins + 1 entries
    nbins : int
        Number of bins, at most MAX_BINS
    counts : device array (int32)
        Global bin counts, zeroed by the caller, accumulated atomically
    """
    local_hist = cuda.shared.array(MAX_BINS, dtype=np.int32)
    tid = cuda.threadIdx.x
    group_size = cuda.blockDim.x
    p = cuda.grid(1)

    # Shared memory starts undefined, the group clears it cooperatively
    b = tid
    while b < nbins:
        local_hist[b] = 0
        b += group_size
    cuda.syncthreads()

    if p < n_pixels:
        cuda.atomic.add(local_hist, bin_of(luma[p * stride], edges, nbins), 1)
    cuda.syncthreads()

    # One global atomic per group per bin
    b = tid
    while b < nbins:
        if local_hist[b] != 0:
            cuda.atomic.add(counts, b, local_hist[b])
        b += group_size


HISTOGRAM_KERNELS = {
    'naive': histogram_naive,
    'partitioned': histogram_partitioned,
}
