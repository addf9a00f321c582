import sys

from demopack.build_demo import main


sys.exit(main())
