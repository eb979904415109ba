"""
MES Schedule Kernel

Shared infrastructure for the scheduled shop-floor jobs:
- Two-store database access (source and target)
- Atomic named id counters
- Idempotent inserts keyed on natural keys
- Structured JSON logging with per-job daily files
"""

__version__ = "0.1.0"
