import datetime
import threading

import pytest

from chatfiles.ids import (
    BIT_LEN_MACHINE_ID,
    BIT_LEN_SEQUENCE,
    BIT_LEN_TIME,
    DEFAULT_EPOCH,
    SonyflakeIdGenerator,
)

EPOCH = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now
        self.slept: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.now += seconds


def decompose(value: int) -> tuple[int, int, int]:
    machine_id = value & ((1 << BIT_LEN_MACHINE_ID) - 1)
    sequence = (value >> BIT_LEN_MACHINE_ID) & ((1 << BIT_LEN_SEQUENCE) - 1)
    elapsed = value >> (BIT_LEN_SEQUENCE + BIT_LEN_MACHINE_ID)
    return elapsed, sequence, machine_id


def test_id_layout():
    clock = FakeClock(EPOCH.timestamp() + 1.5)
    generator = SonyflakeIdGenerator(machine_id=3, epoch=EPOCH, clock=clock, sleep=clock.sleep)

    first = generator.next_id()
    second = generator.next_id()

    assert decompose(first) == (150, 0, 3)
    assert decompose(second) == (150, 1, 3)


def test_ids_increase_across_time_units():
    clock = FakeClock(EPOCH.timestamp() + 10)
    generator = SonyflakeIdGenerator(epoch=EPOCH, clock=clock, sleep=clock.sleep)

    first = generator.next_id()
    clock.now += 0.05
    second = generator.next_id()

    assert second > first
    assert decompose(second)[1] == 0


def test_sequence_overflow_waits_for_next_time_unit():
    clock = FakeClock(EPOCH.timestamp() + 10)
    generator = SonyflakeIdGenerator(epoch=EPOCH, clock=clock, sleep=clock.sleep)

    ids = [generator.next_id() for _ in range(1 << BIT_LEN_SEQUENCE)]
    overflow = generator.next_id()

    assert ids == sorted(set(ids))
    assert overflow > ids[-1]
    assert decompose(overflow)[:2] == (decompose(ids[0])[0] + 1, 0)
    assert len(clock.slept) == 1


def test_exhausted_time_bits():
    clock = FakeClock(EPOCH.timestamp() + (1 << BIT_LEN_TIME) * 0.01 + 1)
    generator = SonyflakeIdGenerator(epoch=EPOCH, clock=clock, sleep=clock.sleep)

    with pytest.raises(OverflowError):
        generator.next_id()


@pytest.mark.parametrize("machine_id", [-1, 1 << BIT_LEN_MACHINE_ID])
def test_invalid_machine_id(machine_id):
    with pytest.raises(ValueError, match="machine_id"):
        SonyflakeIdGenerator(machine_id=machine_id)


def test_epoch_in_the_future():
    future = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=1)
    with pytest.raises(ValueError, match="epoch"):
        SonyflakeIdGenerator(epoch=future)


def test_unique_across_threads():
    generator = SonyflakeIdGenerator(machine_id=1)
    results: list[int] = []
    lock = threading.Lock()

    def worker():
        ids = [generator.next_id() for _ in range(200)]
        with lock:
            results.extend(ids)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(set(results)) == 800


def test_default_epoch():
    assert DEFAULT_EPOCH.year == 2014
    assert SonyflakeIdGenerator().next_id() > 0
