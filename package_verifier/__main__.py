"""Entry point for running the verifier as a module via python -m package_verifier"""

import sys

from package_verifier.cli import main

if __name__ == "__main__":
    sys.exit(main())
