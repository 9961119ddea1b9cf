import sys

from tus_session.cli import main

sys.exit(main())
