from numba import cuda

from histeq.kernels.histogram import bin_of


@cuda.jit
def remap(source, edges, nbins, lut, output, n_samples):
    i = cuda.grid(1)
    if i < n_samples:
        output[i] = lut[bin_of(source[i], edges, nbins)]
