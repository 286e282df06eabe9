import sys

from vpnguard.main import main

sys.exit(main())
