import numpy as np
from numba import njit, prange

from histeq.kernels.channels import BLUE_WEIGHT, GREEN_WEIGHT, RED_WEIGHT


@njit(parallel=False)
def luma_u8(samples, channels):
    """Host luma reduction, same arithmetic as the device kernel (no fastmath)."""
    result = samples.copy()
    if channels != 3:
        return result
    for p in range(samples.size // 3):
        base = p * 3
        value = (RED_WEIGHT * samples[base]
                 + GREEN_WEIGHT * samples[base + 1]
                 + BLUE_WEIGHT * samples[base + 2])
        level = min(int(value), 255)
        result[base] = level
        result[base + 1] = level
        result[base + 2] = level
    return result


@njit(fastmath=True)
def bin_of(value, edges):
    nbins = edges.size - 1
    for b in range(nbins):
        if value < edges[b + 1]:
            return b
    return nbins - 1


@njit(fastmath=True, parallel=False)
def compute_histogram(luma, stride, edges):
    """Count every stride-th sample into the bins described by edges."""
    hist = np.zeros(edges.size - 1, dtype=np.int32)
    for i in range(0, luma.size, stride):
        hist[bin_of(luma[i], edges)] += 1
    return hist


@njit(fastmath=True)
def inclusive_scan(counts):
    cumulative = np.zeros(counts.size, dtype=np.int32)
    running = 0
    for i in range(counts.size):
        running += counts[i]
        cumulative[i] = running
    return cumulative


@njit(fastmath=True)
def exclusive_scan(counts):
    cumulative = np.zeros(counts.size, dtype=np.int32)
    running = 0
    for i in range(counts.size):
        cumulative[i] = running
        running += counts[i]
    return cumulative


@njit(fastmath=True)
def normalize_cumulative(cumulative):
    total = np.int64(cumulative[-1])
    normalized = np.zeros(cumulative.size, dtype=np.int32)
    for i in range(cumulative.size):
        normalized[i] = np.int64(cumulative[i]) * 255 // total
    return normalized


@njit(parallel=True, fastmath=True)
def apply_lut(samples, edges, lut):
    """Apply a per-bin lookup table to every sample."""
    result = np.zeros_like(samples)
    for i in prange(samples.size):
        result[i] = lut[bin_of(samples[i], edges)]
    return result


def equalize_reference(image, edges, scan='inclusive', remap_source='original'):
    """
    Sequential equalization used to check device results.

    Parameters:
    -----------
    image : ndarray (uint8)
        (H, W), (H, W, 1) or (H, W, 3) image
    edges : ndarray (int32)
        Bin boundary table
    scan : str
        'inclusive' or 'exclusive', selects the cumulative semantics
    remap_source : str
        'original' remaps the input samples, 'luma' the reduced ones

    Returns:
    --------
    result : ndarray (uint8)
        Equalized image with the input's shape
    """
    image = np.asarray(image)
    channels = image.shape[2] if image.ndim == 3 else 1
    samples = np.ascontiguousarray(image).ravel()
    edges = np.asarray(edges, dtype=np.int32)

    luma = luma_u8(samples, channels)
    counts = compute_histogram(luma, channels, edges)
    if scan == 'inclusive':
        cumulative = inclusive_scan(counts)
    else:
        cumulative = exclusive_scan(counts)
    lut = normalize_cumulative(cumulative)
    source = samples if remap_source == 'original' else luma
    return apply_lut(source, edges, lut).reshape(image.shape)
