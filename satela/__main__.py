import sys

from satela.service import main

sys.exit(main())
