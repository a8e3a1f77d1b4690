"""
Pytest configuration for shotstop tests.

Adds the repository root to sys.path so that `import shotstop` works when
pytest is run from a checkout without installing the package.
"""
import sys
import os

# shotstop/tests/ → shotstop/ → repository root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
