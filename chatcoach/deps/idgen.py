"""
Snowflake-style identifier generator

Ids are 63-bit integers laid out as
``timestamp_ms_since_epoch << 22 | node_id << 12 | sequence``
so that id order follows creation time across processes.
"""

import random
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

# Twitter snowflake epoch (2010-11-04T01:42:54.657Z)
EPOCH_MS = 1288834974657

NODE_BITS = 10
SEQUENCE_BITS = 12
MAX_NODE_ID = (1 << NODE_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
TIME_SHIFT = NODE_BITS + SEQUENCE_BITS

IdFactory = Callable[[], int]


class SnowflakeGenerator:
    """Thread-safe generator of roughly time-ordered unique ids"""

    def __init__(self, node_id: Optional[int] = None, clock: Callable[[], float] = time.time):
        if node_id is None:
            node_id = random.randint(0, MAX_NODE_ID)
        if not 0 <= node_id <= MAX_NODE_ID:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE_ID}")
        self.node_id = node_id
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def next_id(self) -> int:
        with self._lock:
            now = self._now_ms()
            if now < self._last_ms:
                # Clock moved backwards: keep issuing from the last timestamp
                now = self._last_ms

            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    # Sequence exhausted for this millisecond
                    while now <= self._last_ms:
                        time.sleep(0.0001)
                        now = self._now_ms()
            else:
                self._sequence = 0

            self._last_ms = now
            return ((now - EPOCH_MS) << TIME_SHIFT) | (self.node_id << SEQUENCE_BITS) | self._sequence

    __call__ = next_id


def from_time(moment: datetime) -> int:
    """Smallest id that could have been generated at ``moment``"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (int(moment.timestamp() * 1000) - EPOCH_MS) << TIME_SHIFT


def to_time(snowflake_id: int) -> datetime:
    """Creation time encoded in an id"""
    millis = (snowflake_id >> TIME_SHIFT) + EPOCH_MS
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def assign_id(entity, id_factory: IdFactory):
    """Give ``entity`` a fresh id unless it already carries one"""
    if not getattr(entity, "id", None):
        entity.id = id_factory()
    return entity


_default_generator: Optional[SnowflakeGenerator] = None
_default_lock = threading.Lock()


def get_id_generator() -> SnowflakeGenerator:
    """Process-wide generator, created on first use from settings"""
    global _default_generator
    if _default_generator is None:
        with _default_lock:
            if _default_generator is None:
                from chatcoach.core.config import settings
                _default_generator = SnowflakeGenerator(node_id=settings.idgen_node_id)
    return _default_generator
