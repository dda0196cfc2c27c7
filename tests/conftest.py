import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parent.parent
IMPLEMENTATION = ROOT / "implementation"

if str(IMPLEMENTATION) not in sys.path:
    sys.path.insert(0, str(IMPLEMENTATION))
