import sys

from mes_batch.cli import main

sys.exit(main())
