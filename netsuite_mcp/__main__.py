import sys

from netsuite_mcp.cli import main

sys.exit(main())
