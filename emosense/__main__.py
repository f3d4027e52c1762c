"""Allow ``python -m emosense`` to start the console companion."""

import sys

from emosense.cli import main

sys.exit(main())
