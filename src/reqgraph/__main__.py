"""Allow running as ``python -m reqgraph``."""

import sys

from reqgraph.cli import main

sys.exit(main())
