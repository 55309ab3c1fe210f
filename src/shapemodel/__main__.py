"""Command-line interface."""
import sys

from shapemodel.main import main

if __name__ == "__main__":
    sys.exit(main())
