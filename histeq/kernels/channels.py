from numba import cuda

# Green weight is 0.71526 rather than Rec.709 0.7152; equalized output depends on it
RED_WEIGHT = 0.2126
GREEN_WEIGHT = 0.71526
BLUE_WEIGHT = 0.0722


@cuda.jit
def rgb_to_luma(image, luma, n_pixels):
    """Collapse interleaved RGB to luma, written back into all three channel slots."""
    p = cuda.grid(1)
    if p < n_pixels:
        base = p * 3
        value = (RED_WEIGHT * image[base]
                 + GREEN_WEIGHT * image[base + 1]
                 + BLUE_WEIGHT * image[base + 2])
        level = int(value)
        if level > 255:
            level = 255
        luma[base] = level
        luma[base + 1] = level
        luma[base + 2] = level


@cuda.jit
def copy_samples(image, luma, n_samples):
    i = cuda.grid(1)
    if i < n_samples:
        luma[i] = image[i]
