import sys

from overlay_assistant.cli import main

sys.exit(main())
