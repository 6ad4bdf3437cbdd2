import dataclasses
import time
from functools import partial
from typing import Dict, Optional, Tuple

import numpy as np
from numba import cuda
from numba.core.errors import NumbaError
from numba.cuda.cudadrv.driver import CudaAPIError

from histeq.config import EqualizationConfig
from histeq.errors import ConfigurationError, DeviceResourceError, EmptyImageError, KernelBuildError
from histeq.kernels.channels import copy_samples, rgb_to_luma
from histeq.kernels.histogram import HISTOGRAM_KERNELS
from histeq.kernels.normalize import normalize_cumulative
from histeq.kernels.remap import remap
from histeq.kernels.scan import exclusive_scan, inclusive_scan

STAGES = ('reduce', 'histogram', 'scan', 'normalize', 'remap')


@dataclasses.dataclass
class EqualizationResult:
    image: np.ndarray
    counts: np.ndarray
    cumulative: np.ndarray
    lut: np.ndarray
    edges: np.ndarray
    timings: Dict[str, float] = dataclasses.field(default_factory=dict)


def flatten_image(image: np.ndarray) -> Tuple[np.ndarray, int]:
    """Validate an 8-bit 2-D image and return its interleaved samples and channel count.

    Args:
        image: uint8 array shaped (H, W), (H, W, 1) or (H, W, 3)

    Returns:
        Contiguous 1-D sample buffer and the number of channels
    """
    image = np.asarray(image)
    if image.dtype != np.uint8:
        raise ConfigurationError(f"Image must be uint8, got {image.dtype}")
    if image.ndim == 2:
        channels = 1
    elif image.ndim == 3 and image.shape[2] in (1, 3):
        channels = image.shape[2]
    else:
        raise ConfigurationError(f"Image must be (H, W), (H, W, 1) or (H, W, 3), got shape {image.shape}")
    if image.size == 0:
        raise EmptyImageError("Cannot equalize an image with zero pixels")
    return np.ascontiguousarray(image).ravel(), channels


class EqualizationPipeline:
    """Runs the five equalization stages as strictly ordered device dispatches."""

    def __init__(self, config: Optional[EqualizationConfig] = None, **options):
        if config is None:
            config = EqualizationConfig(**options)
        elif options:
            config = dataclasses.replace(config, **options)
        self.config = config
        self.edges = config.edges()
        self.nbins = len(self.edges) - 1
        self.timings: Dict[str, float] = {}

    def _launch(self, stage: str, name: str, kernel, workers: int, *args, group_size: Optional[int] = None):
        if group_size is None:
            group_size = self.config.group_size
        groups = (workers + group_size - 1) // group_size

        start = time.time()
        try:
            kernel[groups, group_size](*args)
            # Stage k+1 reads what stage k wrote, so every dispatch is joined before the next
            cuda.synchronize()
        except NumbaError as e:
            raise KernelBuildError(name, str(e)) from e
        except CudaAPIError as e:
            raise DeviceResourceError(f"Kernel '{name}' failed on the device", str(e)) from e
        elapsed = time.time() - start

        if self.config.profile:
            self.timings[stage] = self.timings.get(stage, 0.0) + elapsed
        if self.config.verbose:
            print(f"{name}: {workers} workers in {groups} groups of {group_size} - {elapsed * 1000:.3f} ms")

    def run(self, image: np.ndarray) -> EqualizationResult:
        """Equalize one image. Either every stage completes or an exception is raised."""
        image = np.asarray(image)
        samples, channels = flatten_image(image)
        n_samples = samples.size
        n_pixels = n_samples // channels
        nbins = self.nbins
        cfg = self.config
        self.timings = {}

        if not cuda.is_available():
            raise DeviceResourceError("No CUDA device available")

        if cfg.verbose:
            print(f"Equalizing {image.shape} image: {nbins} bins, "
                  f"{cfg.histogram} histogram, {cfg.scan} scan, groups of {cfg.group_size}")

        buffers = {}
        try:
            buffers['image'] = cuda.to_device(samples)
            buffers['luma'] = cuda.device_array(n_samples, dtype=np.uint8)
            buffers['edges'] = cuda.to_device(self.edges)
            # The naive strategy only ever adds, so the global counts start at zero
            buffers['counts'] = cuda.to_device(np.zeros(nbins, dtype=np.int32))
            buffers['lut'] = cuda.device_array(nbins, dtype=np.int32)
            buffers['output'] = cuda.device_array(n_samples, dtype=np.uint8)

            # Reduce
            if channels == 3:
                self._launch('reduce', 'rgb_to_luma', rgb_to_luma, n_pixels,
                             buffers['image'], buffers['luma'], np.int64(n_pixels))
            else:
                self._launch('reduce', 'copy_samples', copy_samples, n_samples,
                             buffers['image'], buffers['luma'], np.int64(n_samples))

            # Histogram
            self._launch('histogram', f'histogram_{cfg.histogram}', HISTOGRAM_KERNELS[cfg.histogram], n_pixels,
                         buffers['luma'], np.int64(channels), np.int64(n_pixels),
                         buffers['edges'], np.int64(nbins), buffers['counts'])
            counts = buffers['counts'].copy_to_host()

            # Scan, over a zero padded copy so the counts stay intact
            scan_length = cfg.scan_length
            padded = np.zeros(scan_length, dtype=np.int32)
            padded[:nbins] = counts
            buffers['scan'] = cuda.to_device(padded)
            launch = partial(self._launch, 'scan')
            if cfg.scan == 'inclusive':
                buffers['cumulative'] = inclusive_scan(buffers['scan'], scan_length, cfg.group_size, launch)
            else:
                buffers['cumulative'] = exclusive_scan(buffers['scan'], scan_length, launch)
            cumulative = buffers['cumulative'].copy_to_host()[:nbins]

            # Normalize
            if cumulative[nbins - 1] == 0:
                raise EmptyImageError(f"Normalization divisor is zero: every pixel falls in the top bin "
                                      f"under the {cfg.scan} scan")
            self._launch('normalize', 'normalize_cumulative', normalize_cumulative, nbins,
                         buffers['cumulative'], np.int64(nbins), buffers['lut'])
            lut = buffers['lut'].copy_to_host()

            # Remap
            source = buffers['image'] if cfg.remap_source == 'original' else buffers['luma']
            self._launch('remap', 'remap', remap, n_samples,
                         source, buffers['edges'], np.int64(nbins), buffers['lut'],
                         buffers['output'], np.int64(n_samples))
            output = buffers['output'].copy_to_host().reshape(image.shape)
        except (CudaAPIError, MemoryError) as e:
            # Allocations and transfers of every stage, including the scan buffers
            raise DeviceResourceError("Device buffer allocation or transfer failed", str(e)) from e
        finally:
            buffers.clear()

        if cfg.verbose and cfg.profile:
            total = sum(self.timings.values())
            print(f"Total device time: {total * 1000:.3f} ms")

        return EqualizationResult(
            image=output,
            counts=counts,
            cumulative=cumulative,
            lut=lut,
            edges=self.edges.copy(),
            timings=dict(self.timings),
        )


def equalize(image: np.ndarray, config: Optional[EqualizationConfig] = None, **options) -> np.ndarray:
    """Histogram-equalize an 8-bit image on the device and return the new image."""
    return EqualizationPipeline(config, **options).run(image).image
