import sys
from pathlib import Path

# Project root on sys.path for `import services`, `import utils`, etc.;
# the tests directory for the shared `factories` helpers.
TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
for path in (PROJECT_ROOT, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
