# Make the `transcribefree` package importable without installing it and keep
# test runs away from the real data and log directories.
from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

# Add the backend directory to PYTHONPATH so `import transcribefree` works
ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

_SCRATCH = tempfile.mkdtemp(prefix="transcribefree-tests-")
os.environ.setdefault("DATA_ROOT", os.path.join(_SCRATCH, "data"))
os.environ.setdefault("LOG_DIR", os.path.join(_SCRATCH, "logs"))
os.environ.setdefault("TRANSCRIBE_URL", "")
os.environ.setdefault("ANALYTICS_URL", "")
os.environ.setdefault("PAYMENT_INTENT_URL", "")
