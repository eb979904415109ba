"""
Pure domain layer.

No ORM, database or I/O dependencies; the only sanctioned time source is
an injected Clock.
"""

from mes_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
]
