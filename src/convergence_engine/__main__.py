import sys

from convergence_engine.cli import main

sys.exit(main())
