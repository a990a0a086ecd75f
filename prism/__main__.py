import sys

from prism.main import main

sys.exit(main())
