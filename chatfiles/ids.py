"""Unique, monotonically increasing 64-bit identifiers."""

import datetime
import threading
import time
from collections.abc import Callable
from typing import Protocol

BIT_LEN_TIME = 39
BIT_LEN_SEQUENCE = 8
BIT_LEN_MACHINE_ID = 16

# Time is counted in units of 10ms
TIME_UNIT = 0.01

DEFAULT_EPOCH = datetime.datetime(2014, 9, 1, tzinfo=datetime.timezone.utc)


class IdGenerator(Protocol):
    def next_id(self) -> int: ...


class SonyflakeIdGenerator:
    """Sonyflake-style id generator.

    An id is composed of 39 bits of elapsed time since ``epoch`` (in 10ms
    units), an 8-bit sequence number for ids created within the same time unit
    and a 16-bit machine id. Ids from a single generator are strictly
    increasing; generators with different machine ids never collide.
    """

    def __init__(
        self,
        machine_id: int = 0,
        epoch: datetime.datetime = DEFAULT_EPOCH,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not 0 <= machine_id < 1 << BIT_LEN_MACHINE_ID:
            raise ValueError(f"machine_id must fit in {BIT_LEN_MACHINE_ID} bits")
        if epoch.timestamp() > clock():
            raise ValueError("epoch must not be in the future")
        self.machine_id = machine_id
        self._start = int(epoch.timestamp() / TIME_UNIT)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._elapsed = 0
        self._sequence = (1 << BIT_LEN_SEQUENCE) - 1

    def _current_elapsed(self) -> int:
        return int(self._clock() / TIME_UNIT) - self._start

    def next_id(self) -> int:
        mask_sequence = (1 << BIT_LEN_SEQUENCE) - 1

        with self._lock:
            current = self._current_elapsed()
            if self._elapsed < current:
                self._elapsed = current
                self._sequence = 0
            else:
                self._sequence = (self._sequence + 1) & mask_sequence
                if self._sequence == 0:
                    self._elapsed += 1
                    overtime = self._elapsed - current
                    self._sleep(overtime * TIME_UNIT)

            if self._elapsed >= 1 << BIT_LEN_TIME:
                raise OverflowError("Sonyflake time bits exhausted")

            return (
                self._elapsed << (BIT_LEN_SEQUENCE + BIT_LEN_MACHINE_ID)
                | self._sequence << BIT_LEN_MACHINE_ID
                | self.machine_id
            )
