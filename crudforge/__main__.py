"""Allow ``python -m crudforge``."""

import sys

from crudforge.cli import main

sys.exit(main())
