"""Allow ``python -m imageshare``."""

import sys

from imageshare.cli import main

sys.exit(main())
