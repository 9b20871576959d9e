import sys

from feedcrawl.cli import main

sys.exit(main())
