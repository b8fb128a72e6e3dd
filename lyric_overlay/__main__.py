import sys

from lyric_overlay.engine import main

sys.exit(main())
