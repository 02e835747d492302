import sys

from plushpal.main import main

sys.exit(main())
