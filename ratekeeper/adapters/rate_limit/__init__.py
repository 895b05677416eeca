"""Counter store adapters.

The rate limiter engine depends on the ``CounterStore`` abstraction only, so
the per-process store and the shared Redis store are interchangeable.
"""

from ratekeeper.adapters.rate_limit.base import CounterEntry, CounterStore
from ratekeeper.adapters.rate_limit.in_memory import InMemoryCounterStore
from ratekeeper.adapters.rate_limit.redis_store import RedisCounterStore

__all__ = [
    "CounterEntry",
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
]
