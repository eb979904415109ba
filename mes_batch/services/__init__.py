from mes_batch.services.dispatcher import JobDispatcher

__all__ = ["JobDispatcher"]
