import sys

from backup_monitor.app import main

sys.exit(main())
