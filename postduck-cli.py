#!/usr/bin/env python3
"""
Postduck CLI launcher

Runs the postduck command from a source checkout without installing it.

Examples:
    python3 postduck-cli.py agent
    python3 postduck-cli.py send "curl https://httpbin.org/get"
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from postduck.cli import main

if __name__ == '__main__':
    main()
