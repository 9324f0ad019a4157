import asyncio

import psutil
import pytest

from narrador.utils.backoff import BackoffPolicy
from narrador.utils.resources import ResourceGate, ResourceSample, sample_resources_now

LOW = ResourceSample(free_ram_mb=100, cpu_percent=99)
OK = ResourceSample(free_ram_mb=4096, cpu_percent=10)


class TestBackoff:
    def test_delays_grow_up_to_ceiling(self):
        policy = BackoffPolicy(max_attempts=4, base_delay=1.0, multiplier=2.0, ceiling=3.0)
        assert list(policy.delays()) == [1.0, 2.0, 3.0]

    def test_single_attempt_has_no_delays(self):
        assert list(BackoffPolicy(max_attempts=1).delays()) == []

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"base_delay": -1}, {"multiplier": 0.5}],
    )
    def test_invalid_policy(self, kwargs):
        with pytest.raises(ValueError):
            BackoffPolicy(**kwargs)

    def test_retrying_succeeds_after_failures(self):
        calls = []

        async def flaky():
            async for attempt in BackoffPolicy(max_attempts=3, base_delay=0.0).retrying((ConnectionError,)):
                with attempt:
                    calls.append(1)
                    if len(calls) < 3:
                        raise ConnectionError("reset")
            return len(calls)

        assert asyncio.run(flaky()) == 3

    def test_retrying_reraises_last_error(self):
        async def always_fails():
            async for attempt in BackoffPolicy(max_attempts=2, base_delay=0.0).retrying((ConnectionError,)):
                with attempt:
                    raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            asyncio.run(always_fails())


class TestResourceGate:
    def make_gate(self, samples):
        sleeps = []
        queue = list(samples)

        async def fake_sleep(delay):
            sleeps.append(delay)

        gate = ResourceGate(
            BackoffPolicy(max_attempts=3, base_delay=1.0, ceiling=5.0),
            min_free_ram_mb=512,
            max_cpu_percent=90,
            sampler=lambda: queue.pop(0) if len(queue) > 1 else queue[0],
            instant_sampler=lambda: queue[0],
            sleep=fake_sleep,
        )
        return gate, sleeps

    def test_capacity_available(self):
        gate, sleeps = self.make_gate([OK])
        assert asyncio.run(gate.wait_for_capacity("descarga")) is True
        assert sleeps == []

    def test_waits_until_capacity(self):
        gate, sleeps = self.make_gate([LOW, OK])
        assert asyncio.run(gate.wait_for_capacity("encode")) is True
        assert sleeps == [1.0]

    def test_gives_up_and_continues(self):
        gate, sleeps = self.make_gate([LOW])
        assert asyncio.run(gate.wait_for_capacity("encode")) is False
        assert sleeps == [1.0, 2.0]

    def test_check_now_never_raises(self):
        def broken():
            raise OSError("no /proc")

        gate = ResourceGate(BackoffPolicy(), instant_sampler=broken)
        assert gate.check_now("encode") is None
        gate, _ = self.make_gate([LOW])
        assert gate.check_now("encode") == LOW

    def test_check_now_does_not_use_blocking_sampler(self):
        def blocking():
            raise AssertionError("check_now no debe esperar al muestreo de CPU")

        gate = ResourceGate(BackoffPolicy(), sampler=blocking, instant_sampler=lambda: OK)
        assert gate.check_now("encode") == OK

    def test_instant_sample_passes_no_interval(self, monkeypatch):
        intervals = []

        def fake_cpu_percent(interval=None):
            intervals.append(interval)
            return 12.0

        monkeypatch.setattr(psutil, "cpu_percent", fake_cpu_percent)
        sample = sample_resources_now()
        assert intervals == [None]
        assert sample.cpu_percent == 12.0
