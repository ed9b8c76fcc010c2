import sys

from issuesync.main import main

sys.exit(main())
