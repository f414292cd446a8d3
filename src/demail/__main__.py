"""Allow running demail as ``python -m demail``."""

import sys

from demail.cli import main

sys.exit(main())
