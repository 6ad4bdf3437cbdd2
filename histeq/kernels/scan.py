import math

import numpy as np
from numba import cuda

from histeq.bins import MAX_BINS


@cuda.jit
def hillis_steele_scan_local(counts, cumulative, n):
    """Inclusive scan of n <= blockDim.x values inside a single group."""
    buf = cuda.shared.array((2, MAX_BINS), dtype=np.int32)
    i = cuda.threadIdx.x
    if i < n:
        buf[0, i] = counts[i]
    cuda.syncthreads()

    # Read generation `gen`, write generation 1 - gen, then flip
    gen = 0
    stride = 1
    while stride < n:
        if i < n:
            if i >= stride:
                buf[1 - gen, i] = buf[gen, i] + buf[gen, i - stride]
            else:
                buf[1 - gen, i] = buf[gen, i]
        cuda.syncthreads()
        gen = 1 - gen
        stride *= 2

    if i < n:
        cumulative[i] = buf[gen, i]


@cuda.jit
def hillis_steele_step(src, dst, stride, n):
    """One stride round of the inclusive scan; the launch boundary is the barrier."""
    i = cuda.grid(1)
    if i < n:
        if i >= stride:
            dst[i] = src[i] + src[i - stride]
        else:
            dst[i] = src[i]


@cuda.jit
def blelloch_scan(data, n):
    """In-place exclusive scan of n values, n a power of two no larger than MAX_BINS."""
    temp = cuda.shared.array(MAX_BINS, dtype=np.int32)
    i = cuda.threadIdx.x
    if i < n:
        temp[i] = data[i]
    cuda.syncthreads()

    # Up-sweep
    stride = 1
    while stride < n:
        if i < n and (i + 1) % (2 * stride) == 0:
            temp[i] += temp[i - stride]
        stride *= 2
        cuda.syncthreads()

    # Clearing the root is what makes the result exclusive
    if i == 0:
        temp[n - 1] = 0
    cuda.syncthreads()

    # Down-sweep
    stride = n // 2
    while stride > 0:
        if i < n and (i + 1) % (2 * stride) == 0:
            t = temp[i]
            temp[i] += temp[i - stride]
            temp[i - stride] = t
        stride //= 2
        cuda.syncthreads()

    if i < n:
        data[i] = temp[i]


def inclusive_scan(d_counts, n, group_size, launch):
    """
    Inclusive prefix sum of the first n entries of d_counts.

    Fits in one group: a single launch synchronised with group barriers.
    Otherwise one launch per stride over two owned buffers, relabelling the
    current generation after each round. `launch(name, kernel, workers, *args)`
    runs and joins one dispatch. Returns the device array holding the result.
    """
    if n <= group_size and n <= MAX_BINS:
        d_out = cuda.device_array(n, dtype=np.int32)
        launch('hillis_steele_scan_local', hillis_steele_scan_local, n, d_counts, d_out, np.int64(n),
               group_size=n)
        return d_out

    buffers = (d_counts, cuda.device_array(n, dtype=np.int32))
    gen = 0
    for round_ in range(math.ceil(math.log2(n))):
        stride = 1 << round_
        launch(f'hillis_steele_step[{stride}]', hillis_steele_step, n,
               buffers[gen], buffers[1 - gen], np.int64(stride), np.int64(n))
        gen = 1 - gen
    return buffers[gen]


def exclusive_scan(d_counts, n, launch):
    """Exclusive prefix sum in place; n must already be padded to a power of two."""
    launch('blelloch_scan', blelloch_scan, n, d_counts, np.int64(n), group_size=n)
    return d_counts
