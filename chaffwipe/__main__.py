import sys

from chaffwipe.cli import main

sys.exit(main())
