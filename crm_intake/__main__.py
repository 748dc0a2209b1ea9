import sys

from crm_intake.cli import main

sys.exit(main())
