import sys
import time

import cv2
import numpy as np
from numba import cuda

import histeq.reference
from histeq.config import EqualizationConfig
from histeq.errors import HistEqError
from histeq.pipeline import STAGES, EqualizationPipeline

USAGE = """Usage: python histeq_cli.py equalize [options] input output
  -d N : select device N
  -l   : list devices
  -b N : number of bins (default 256)
  -H S : histogram strategy, naive or partitioned (default partitioned)
  -s S : scan strategy, inclusive or exclusive (default inclusive)
  -g N : group size (default 256)
  -t   : print per stage timings
  -c   : compare against the CPU reference
  -h   : print this message"""


def read_image(path):
    image = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise FileNotFoundError(f"Failed to read input image '{path}'")
    if image.dtype != np.uint8:
        raise ValueError(f"Only 8-bit images are supported, '{path}' is {image.dtype}")
    if image.ndim == 3 and image.shape[2] == 4:
        image = image[:, :, :3]
    if image.ndim == 3 and image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    return image


def write_image(path, image):
    if image.ndim == 3 and image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    if not cv2.imwrite(path, image):
        raise OSError(f"Failed to write output image '{path}'")


def parse_args(argv):
    options = {}
    paths = []
    flags = {'-t': 'profile', '-c': 'compare', '-l': 'list', '-h': 'help'}
    values = {'-d': ('device', int), '-b': ('bins', int), '-H': ('histogram', str),
              '-s': ('scan', str), '-g': ('group_size', int)}
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in flags:
            options[flags[arg]] = True
        elif arg in values and i < len(argv) - 1:
            name, kind = values[arg]
            options[name] = kind(argv[i + 1])
            i += 1
        else:
            paths.append(arg)
        i += 1
    return options, paths


def main(argv=None):
    options, paths = parse_args(sys.argv[2:] if argv is None else argv)
    if options.get('help'):
        print(USAGE)
        return 0
    if options.get('list'):
        cuda.detect()
        if not paths:
            return 0
    if len(paths) != 2:
        print(USAGE)
        return 1
    in_path, out_path = paths

    try:
        if 'device' in options:
            cuda.select_device(options['device'])
        config = EqualizationConfig(
            bins=options.get('bins', 256),
            histogram=options.get('histogram', 'partitioned'),
            scan=options.get('scan', 'inclusive'),
            group_size=options.get('group_size', 256),
            profile=options.get('profile', False),
        )
        image = read_image(in_path)
        pipeline = EqualizationPipeline(config)

        start = time.time()
        result = pipeline.run(image)
        elapsed = time.time() - start
        write_image(out_path, result.image)
    except (HistEqError, OSError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Saved equalized image: {out_path}")
    print(f"Image: {image.shape}, bins: {config.bins}, {config.histogram} histogram, {config.scan} scan")
    print(f"Pipeline time: {elapsed:.6f} seconds")
    if config.profile:
        for stage in STAGES:
            print(f"  {stage:<10} {result.timings.get(stage, 0.0) * 1000:.3f} ms")

    if options.get('compare'):
        expected = histeq.reference.equalize_reference(image, result.edges, scan=config.scan)
        if np.array_equal(expected, result.image):
            print("Verification: device output == CPU reference")
        else:
            same = np.mean(expected == result.image)
            print(f"Verification: fraction of identical samples = {same:.6f}")
            return 2
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
