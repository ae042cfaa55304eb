"""
Root conftest.py for pytest.

Sets up the Python path so imports work correctly without an install.
"""
import sys
from pathlib import Path

# Get the repository root (where tests run from)
current_dir = Path(__file__).parent

# Add the repository root to sys.path so "from schemascope.X import Y" works
if str(current_dir) not in sys.path:
    sys.path.insert(0, str(current_dir))
