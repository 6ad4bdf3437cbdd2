import sys

import scripts.equalize_batch
import scripts.equalize_image

if __name__ == '__main__':
    if len(sys.argv) == 1:
        sys.argv.append("equalize")
    if sys.argv[1] == "equalize":
        sys.exit(scripts.equalize_image.main())
    elif sys.argv[1] == "batch":
        sys.exit(scripts.equalize_batch.main())
    else:
        print(f"Unknown command '{sys.argv[1]}', expected 'equalize' or 'batch'")
        sys.exit(1)
