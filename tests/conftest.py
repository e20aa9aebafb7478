from __future__ import annotations

import os

# Tests never export spans or open a database pool.
os.environ.setdefault("TM_OTEL_ENABLED", "false")
os.environ.setdefault("TM_STORAGE_BACKEND", "memory")
