"""Services for the schedule kernel (write side)."""

from mes_kernel.services.sequence_service import SequenceAllocator

__all__ = [
    "SequenceAllocator",
]
