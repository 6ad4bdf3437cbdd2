import os
import sys
import time

from tqdm import tqdm

from histeq.config import EqualizationConfig
from histeq.errors import HistEqError
from histeq.pipeline import EqualizationPipeline
from scripts.equalize_image import read_image, write_image

EXTENSIONS = ('.png', '.jpg', '.jpeg', '.bmp', '.ppm', '.pgm', '.tif', '.tiff')


def equalize_directory(input_dir, output_dir, config=None):
    """
    Equalize every image in input_dir into output_dir, one pipeline run per image.
    A failed image produces no output file and does not stop the batch.
    """
    config = config or EqualizationConfig()
    pipeline = EqualizationPipeline(config)
    os.makedirs(output_dir, exist_ok=True)

    names = sorted(n for n in os.listdir(input_dir) if n.lower().endswith(EXTENSIONS))
    print(f"Found {len(names)} images in {input_dir}")

    start_time = time.time()
    failed = []
    for name in tqdm(names, desc="Equalizing"):
        try:
            result = pipeline.run(read_image(os.path.join(input_dir, name)))
            write_image(os.path.join(output_dir, name), result.image)
        except (HistEqError, OSError, ValueError) as e:
            print(f"ERROR: {name} failed: {e}")
            failed.append(name)

    total_time = time.time() - start_time
    print("-" * 80)
    print(f"Total processing time: {total_time:.2f} seconds")
    print(f"Successfully processed: {len(names) - len(failed)}/{len(names)} images")
    return failed


def main(argv=None):
    argv = sys.argv[2:] if argv is None else argv
    if len(argv) != 2:
        print("Usage: python histeq_cli.py batch input_dir output_dir")
        return 1
    failed = equalize_directory(argv[0], argv[1])
    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
