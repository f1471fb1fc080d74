#!/usr/bin/env python3
# ABOUTME: Run the splat renderer from a source checkout
# ABOUTME: Equivalent to the installed splat-render console script

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from splat_renderer.cli import main


if __name__ == '__main__':
    main()
