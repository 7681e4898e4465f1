import asyncio
import queue
import time

import pytest

from rfablate.device import MockImpedanceMeter, MockSwitchFabric
from rfablate.electrodes import (
    DEFAULT_TOPOLOGY,
    build_ablation_groups,
    build_measurement_permutations,
    precharge_permutation,
)
from rfablate.meas import SCHED_STATE, AblationGroupRegistry, DutyCycleScheduler
from rfablate.types import RunConfig
from rfablate.types.interfaces import ImpedanceMeterInterface, SwitchFabricInterface
from rfablate.util import MeasurementLog

# three faces -> three measurement permutations per sweep
TOPOLOGY = DEFAULT_TOPOLOGY.restricted(["N", "E", "S"], external=[])


def make_scheduler(
    combinations=("N,E",),
    limits=(),
    switch=None,
    meter=None,
    measurement_log=None,
    topology=TOPOLOGY,
    **config_kwargs,
):
    config_kwargs.setdefault("interval_s", 0.001)
    config_kwargs.setdefault("pre_ablation_ms", 0)
    config_kwargs.setdefault("sweep_repeats", 1)
    config_kwargs.setdefault("shuffle", False)
    config = RunConfig(combinations=list(combinations), limits=list(limits), **config_kwargs)
    switch = switch or MockSwitchFabric()
    meter = meter or MockImpedanceMeter(seed=1)
    registry = AblationGroupRegistry(
        build_ablation_groups(
            topology, config.combinations, config.limits, config.active_duration_ms
        )
    )
    sched = DutyCycleScheduler(
        switch=SwitchFabricInterface(switch),
        meter=ImpedanceMeterInterface(meter),
        permutations=build_measurement_permutations(topology),
        registry=registry,
        precharge=precharge_permutation(topology),
        measurements=queue.Queue(),
        config=config,
        measurement_log=measurement_log,
    )
    return sched, switch, meter


def drain(q):
    items = []
    while not q.empty():
        items.append(q.get_nowait())
    return items


def ablation_calls(switch):
    return [call for call in switch.connect_calls if call[2]]


class TestSchedulerTicks:
    def test_starts_in_pre_ablation(self):
        sched, switch, _ = make_scheduler()
        assert sched.get_state() == SCHED_STATE.STOPPED
        sched.start()
        assert sched.get_state() == SCHED_STATE.PRE_ABLATION
        assert all(g.active for g in sched.registry.groups)

    def test_cannot_restart(self):
        sched, _, _ = make_scheduler()
        sched.start()
        with pytest.raises(RuntimeError):
            sched.start()

    def test_pre_ablation_connects_precharge(self):
        sched, switch, _ = make_scheduler(pre_ablation_ms=250)
        sched.start()
        delay = sched.tick()
        assert delay == pytest.approx(0.25)
        assert sched.get_state() == SCHED_STATE.IN_MEASUREMENT
        pos, neg, ablation = switch.connect_calls[-1]
        assert ablation
        assert pos == sched.precharge.positive_columns
        assert neg == sched.precharge.negative_columns

    def test_one_sweep_before_work_is_enqueued(self):
        sched, switch, _ = make_scheduler(combinations=["N,E"])
        sched.start()
        sched.tick()  # pre-charge
        sched.tick()  # sweep

        measurements = drain(sched.measurements)
        assert len(measurements) == 3
        assert [(m.positive_code, m.negative_code) for m in measurements] == [
            ("N", "E"),
            ("N", "S"),
            ("E", "S"),
        ]
        assert sched.cycles == 1
        assert sched.get_state() == SCHED_STATE.IN_ABLATION
        assert sched.get_info()["queued_groups"] == ["N,E"]
        # measurements only ever use the measurement path
        assert len(ablation_calls(switch)) == 1  # the pre-charge

    def test_two_faces_measured_three_times_before_ablation(self):
        topology = DEFAULT_TOPOLOGY.restricted(["N", "E"], external=[])
        sched, switch, _ = make_scheduler(
            combinations=["N"], topology=topology, sweep_repeats=3
        )
        sched.start()
        sched.tick()
        assert sched.get_state() == SCHED_STATE.IN_MEASUREMENT
        assert sched.get_info()["queued_groups"] == []
        sched.tick()
        measurements = drain(sched.measurements)
        assert [(m.positive_code, m.negative_code) for m in measurements] == [("N", "E")] * 3
        assert sched.get_info()["queued_groups"] == ["N"]
        assert len(ablation_calls(switch)) == 1

    def test_one_ablation_connect_per_tick(self):
        sched, switch, _ = make_scheduler(combinations=["N", "S", "N,E"])
        sched.start()
        sched.tick()
        sched.tick()
        assert sched.get_state() == SCHED_STATE.IN_ABLATION

        expected = [g for g in sched.registry.groups]
        for i, group in enumerate(expected):
            before = len(ablation_calls(switch))
            delay = sched.tick()
            calls = ablation_calls(switch)
            assert len(calls) == before + 1
            assert calls[-1][0] == group.pos_electrodes
            assert calls[-1][1] == group.neg_electrodes
            assert delay == pytest.approx(0.001)
            last = i == len(expected) - 1
            assert sched.get_state() == (
                SCHED_STATE.IN_MEASUREMENT if last else SCHED_STATE.IN_ABLATION
            )
        assert sched.pulses == 3

    def test_switch_opened_before_every_connect(self):
        sched, switch, _ = make_scheduler()
        sched.start()
        sched.tick()
        sched.tick()
        # one disconnect before each of the 3 measurements, plus one either side
        # of the sweep, plus the pre-charge
        assert switch.disconnect_calls == 3 + 2 + 1

    def test_connect_failure_skips_permutation(self):
        sched, switch, meter = make_scheduler(
            combinations=["N,E"], switch=MockSwitchFabric(fail_columns="c0")
        )
        sched.start()
        sched.tick()  # pre-charge also touches c0
        assert sched.get_state() == SCHED_STATE.IN_MEASUREMENT
        sched.tick()
        measurements = drain(sched.measurements)
        assert [(m.positive_code, m.negative_code) for m in measurements] == [("E", "S")]
        assert sched.skipped == 2
        assert meter.reads == 1

        # the ablation group also uses c0: skipped with no hold
        delay = sched.tick()
        assert delay == 0.0
        assert sched.pulses == 0
        assert sched.get_state() == SCHED_STATE.IN_MEASUREMENT

    def test_meter_never_ready_skips(self):
        sched, _, meter = make_scheduler(
            meter=MockImpedanceMeter(ready_after=1000), ready_retries=5
        )
        sched.start()
        sched.tick()
        sched.tick()
        assert sched.measurements.empty()
        assert sched.skipped == 3
        assert meter.reads == 0
        # a sweep of skipped reads still counts as a cycle
        assert sched.cycles == 1

    def test_meter_ready_after_polling(self):
        sched, _, meter = make_scheduler(meter=MockImpedanceMeter(ready_after=3))
        sched.start()
        sched.tick()
        sched.tick()
        assert sched.measured == 3
        assert meter.reads == 3

    def test_measurements_are_timestamped_in_order(self):
        sched, _, _ = make_scheduler(sweep_repeats=3)
        sched.start()
        sched.tick()
        sched.tick()
        stamps = [m.timestamp for m in drain(sched.measurements)]
        assert len(stamps) == 9
        assert stamps == sorted(stamps)
        assert stamps[0] >= 0

    def test_shuffled_sweep_covers_every_permutation(self):
        sched, _, _ = make_scheduler(shuffle=True, seed=3, sweep_repeats=2)
        sched.start()
        sched.tick()
        sched.tick()
        measurements = drain(sched.measurements)
        labels = [(m.positive_code, m.negative_code) for m in measurements]
        assert len(labels) == 6
        for half in (labels[:3], labels[3:]):
            assert sorted(half) == sorted([("N", "E"), ("N", "S"), ("E", "S")])

    def test_no_work_completes(self):
        sched, switch, _ = make_scheduler(combinations=[])
        sched.start()
        sched.tick()
        sched.tick()
        assert sched.get_state() == SCHED_STATE.COMPLETE
        assert sched.is_complete
        assert switch.closed_paths is None

    def test_max_cycles_completes(self):
        sched, _, _ = make_scheduler(max_cycles=1)
        sched.start()
        sched.tick()
        sched.tick()
        assert sched.get_state() == SCHED_STATE.COMPLETE
        assert sched.pulses == 0

    def test_stop_request(self, tmp_path):
        log = MeasurementLog(str(tmp_path / "run.impedance.csv"))
        sched, switch, _ = make_scheduler(measurement_log=log)
        sched.start()
        sched.tick()
        sched.request_stop()
        sched.tick()
        assert sched.get_state() == SCHED_STATE.STOPPED
        assert not sched.is_complete
        assert sched.measurements.empty()
        assert switch.closed_paths is None
        assert log.closed
        # terminal states do nothing more
        assert sched.tick() == 0.0
        assert sched.get_state() == SCHED_STATE.STOPPED

    def test_measurements_written_to_log(self, tmp_path):
        log = MeasurementLog(str(tmp_path / "run.impedance.csv"))
        sched, _, _ = make_scheduler(measurement_log=log, max_cycles=1)
        sched.start()
        sched.tick()
        sched.tick()
        assert log.closed
        lines = (tmp_path / "run.impedance.csv").read_text().splitlines()
        assert lines[0] == "date,time,pos,neg,impedance,phase"
        assert len(lines) == 4
        assert lines[1].split(",")[2:4] == ["N", "E"]

    def test_device_error_stops(self):
        class BrokenMeter(MockImpedanceMeter):
            def measure(self):
                raise IOError("serial port gone")

        sched, _, _ = make_scheduler(meter=BrokenMeter())
        sched.start()
        sched.tick()
        sched.tick()
        assert sched.get_state() == SCHED_STATE.STOPPED

    def test_unreadable_meter_value_skipped(self):
        class GarbledMeter(MockImpedanceMeter):
            def measure(self):
                return "", ""

        sched, _, _ = make_scheduler(meter=GarbledMeter())
        sched.start()
        sched.tick()
        sched.tick()
        assert sched.skipped == 3
        assert sched.measured == 0


    def test_non_finite_meter_value_skipped(self):
        class NanMeter(MockImpedanceMeter):
            def measure(self):
                self.reads += 1
                return "nan", "-10.0"

        sched, _, meter = make_scheduler(meter=NanMeter(), max_cycles=1)
        sched.start()
        sched.tick()
        sched.tick()
        assert meter.reads == 3
        assert sched.skipped == 3
        assert sched.measured == 0
        assert sched.measurements.empty()

    def test_terminal_state_is_kept(self):
        sched, _, _ = make_scheduler()
        sched.start()
        sched.request_stop()
        sched.tick()
        assert sched.get_state() == SCHED_STATE.STOPPED
        sched._set_state(SCHED_STATE.IN_MEASUREMENT)
        assert sched.get_state() == SCHED_STATE.STOPPED


class TestSchedulerRun:
    @pytest.mark.asyncio
    async def test_runs_until_groups_exhausted(self):
        sched, switch, _ = make_scheduler(combinations=["N"], limits=[2])
        state = await sched.run()
        assert state == SCHED_STATE.COMPLETE
        assert sched.pulses == 2
        assert sched.cycles == 3
        assert sched.measured == 9
        assert sched.registry.groups[0].is_complete
        assert switch.closed_paths is None

    @pytest.mark.asyncio
    async def test_stop_cuts_hold_short(self):
        sched, _, _ = make_scheduler(pre_ablation_ms=60000)
        task = asyncio.create_task(sched.run())
        await asyncio.sleep(0.2)
        t0 = time.monotonic()
        sched.request_stop()
        state = await asyncio.wait_for(task, timeout=5)
        assert state == SCHED_STATE.STOPPED
        assert time.monotonic() - t0 < 5
        assert sched.cycles == 0

    @pytest.mark.asyncio
    async def test_cancel_waits_for_in_flight_tick(self):
        sched, switch, _ = make_scheduler(
            switch=MockSwitchFabric(debounce_s=0.3), pre_ablation_ms=60000
        )
        task = asyncio.create_task(sched.run())
        await asyncio.sleep(0.1)  # inside the pre-charge connect
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert sched.get_state() == SCHED_STATE.STOPPED
        assert switch.closed_paths is None

        await asyncio.sleep(0.5)
        assert sched.get_state() == SCHED_STATE.STOPPED
        assert switch.closed_paths is None
        assert len(ablation_calls(switch)) == 1
