"""
Thin launcher: run the dual camera tracker.

Use `python run.py` or `python -m DualCamTracker.core.app`.
"""
import os
import sys

# Ensure project root is on sys.path for module imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from DualCamTracker.core.app import main

if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
