import sys

from kv_sync.cli import main

sys.exit(main())
