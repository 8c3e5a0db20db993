"""Allow running as: python -m field_estimator"""

import sys

from field_estimator.main import main

if __name__ == "__main__":
    sys.exit(main())
