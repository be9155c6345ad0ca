"""Batching engine for point writes.

Points written while batching is enabled are staged in a queue and
flushed when either the queue reaches a size threshold or a periodic
timer fires, whichever comes first.

Example:
    >>> from tsbatch.batching import BatchConfig, BatchProcessor
    >>> from tsbatch.base import TimeUnit
    >>>
    >>> config = BatchConfig(actions=500, flush_interval=5, flush_unit=TimeUnit.SECONDS)
    >>> processor = BatchProcessor(client.write_batch, config)
    >>> processor.start()
    >>> processor.put(entry)
    >>> processor.close()
"""

from tsbatch.batching.base import (
    BatchConfig,
    FlushMetrics,
)
from tsbatch.batching.buffer import BatchQueue
from tsbatch.batching.processor import (
    BatchProcessor,
    group_entries,
)
from tsbatch.batching.scheduler import (
    FlushReason,
    FlushScheduler,
)

__all__ = [
    # Base
    "BatchConfig",
    "FlushMetrics",
    # Queue
    "BatchQueue",
    # Scheduler
    "FlushReason",
    "FlushScheduler",
    # Processor
    "BatchProcessor",
    "group_entries",
]
