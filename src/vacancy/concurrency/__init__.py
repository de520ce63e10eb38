from .async_channel import AsyncChannel, ChannelClosedError
from .async_rwlock import AsyncReaderWriterLock
from .timeout import TimeoutError, with_timeout

__all__ = [
    "AsyncChannel",
    "AsyncReaderWriterLock",
    "ChannelClosedError",
    "TimeoutError",
    "with_timeout",
]
