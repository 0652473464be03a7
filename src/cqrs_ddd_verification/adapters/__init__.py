"""Cache and lock adapters.

The Redis adapters live in :mod:`.redis_store` and are imported from there
explicitly so the ``redis`` extra stays optional.
"""

from .memory import InMemoryCacheService, InMemoryLockStrategy

__all__: list[str] = ["InMemoryCacheService", "InMemoryLockStrategy"]
