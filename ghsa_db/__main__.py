import sys

from ghsa_db.run_pipeline import main

sys.exit(main())
