import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# DEV default is a local sqlite file; point this at a real database elsewhere.
DATABASE_URL = os.getenv("GRADEBOOK_DATABASE_URL", f"sqlite:///{BASE_DIR}/gradebook.db")

# Weight policy
MAX_WEIGHT = 100.0  # weights are percentages relative to siblings
WEIGHT_TOLERANCE = 0.01  # totals within this of 100 count as exactly 100

# Item defaults
DEFAULT_MAX_GRADE = 100.0
DEFAULT_MIN_GRADE = 0.0

# Label for the root scope in weight warnings
ROOT_SCOPE_LABEL = "course level"
