"""Allow running as ``python -m hotspotvec``."""
import sys

from hotspotvec.cli import main

sys.exit(main())
