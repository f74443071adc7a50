#!/usr/bin/env python
"""
Convenience wrapper for running steadyhand from the command line.

This script allows you to run steadyhand without needing to install it or use 'python -m'.

Usage:
    python run_steadyhand.py run actions.json --url https://example.com
    python run_steadyhand.py batch urls.txt actions.json --headless
"""

import sys
from pathlib import Path

# Add src directory to Python path so we can import steadyhand
src_dir = Path(__file__).parent / "src"
sys.path.insert(0, str(src_dir))

from steadyhand.cli import main

if __name__ == "__main__":
    sys.exit(main())
