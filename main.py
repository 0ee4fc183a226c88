#!/usr/bin/env python3
"""
scarunner - Software Composition Analysis scan runner

Main entry point for the scan CLI.

Usage:
    python main.py scan --config sca.yaml --project-name my-app
    python main.py scan --project-name my-app --source-type local --source-location ./repo
"""

import sys
from pathlib import Path

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).parent / "src"))

from scarunner.cli import cli


if __name__ == '__main__':
    cli()
