#!/usr/bin/env python3
"""
run.py — Launch tally-relay without installing.

Usage (from the tally-relay directory):
    python run.py start tcp://10.0.0.5:8099
    python run.py start --port 3000
    python run.py init-config
    python run.py check tcp://10.0.0.5:8099
"""
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent))

from tally_relay.main import app

if __name__ == "__main__":
    app()
