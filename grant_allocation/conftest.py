"""Root conftest: makes `grant_allocation.X` importable without installing."""
import sys
from pathlib import Path

_parent = Path(__file__).resolve().parent.parent

# Add repo root so `grant_allocation.X` works
if str(_parent) not in sys.path:
    sys.path.insert(0, str(_parent))
