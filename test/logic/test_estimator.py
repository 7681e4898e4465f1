import asyncio
import queue

import pytest

from rfablate.electrodes import DEFAULT_TOPOLOGY, build_ablation_groups
from rfablate.inference import MockDepthInference
from rfablate.meas import AblationGroupRegistry, DepthEstimator
from rfablate.types import DepthReply, InferenceTimeout, Measurement
from rfablate.types.interfaces import DepthInferenceInterface

N = 3  # nominal count used throughout


class WrongSideInference(MockDepthInference):
    def infer(self, request):
        self.requests.append(request)
        return DepthReply(side="W", depth=1.0)


class BrokenInference(MockDepthInference):
    def infer(self, request):
        self.requests.append(request)
        raise RuntimeError("model crashed")


class FlakyInference(MockDepthInference):
    """Answers like the mock until `failing` is set, then times out."""

    failing = False

    def infer(self, request):
        if self.failing:
            self.requests.append(request)
            raise InferenceTimeout("no reply")
        return super().infer(request)


def meas(side, magnitude, phase=-10.0, positive="N", t=0.0):
    return Measurement(
        timestamp=t,
        positive_code=positive,
        negative_code=side,
        magnitude=magnitude,
        phase=phase,
    )


def make_estimator(device=None, combinations=("E", "N,E"), targets=None):
    device = device or MockDepthInference()
    registry = AblationGroupRegistry(
        build_ablation_groups(DEFAULT_TOPOLOGY, list(combinations), duration_ms=100)
    )
    registry.activate_all()
    est = DepthEstimator(
        measurements=queue.Queue(),
        registry=registry,
        inference=DepthInferenceInterface(device),
        nominal_count=N,
        targets=targets,
    )
    return est, device, registry


def warm_up_and_baseline(est, side="E", baseline=1000.0):
    for _ in range(N):
        est.process(meas(side, 1.0))  # discarded
    for _ in range(N):
        est.process(meas(side, baseline))


class TestPhases:
    def test_phase_transitions(self):
        est, _, _ = make_estimator()
        assert est.phase == "WARM_UP"
        for _ in range(N):
            est.process(meas("E", 1000.0))
        assert est.phase == "BASELINE"
        assert est.baselines == {}
        for _ in range(N - 1):
            est.process(meas("E", 1000.0))
        assert est.baselines == {}
        est.process(meas("E", 1000.0))
        assert est.phase == "STEADY"
        assert est.baselines["E"] == (pytest.approx(1000.0), pytest.approx(-10.0))

    def test_warm_up_samples_do_not_enter_baseline(self):
        est, _, _ = make_estimator()
        warm_up_and_baseline(est, baseline=900.0)
        assert est.baselines["E"][0] == pytest.approx(900.0)

    def test_baseline_uses_triplet_average(self):
        est, _, _ = make_estimator()
        for _ in range(N):
            est.process(meas("E", 1.0))
        for mag in (1000.0, 1002.0, 1200.0):
            est.process(meas("E", mag))
        assert est.baselines["E"][0] == pytest.approx(1001.0)

    def test_short_baseline_uses_mean(self):
        est, _, _ = make_estimator()
        for _ in range(N):
            est.process(meas("E", 1.0))
        est.process(meas("E", 1000.0))
        est.process(meas("S", 500.0))
        est.process(meas("S", 600.0))
        assert est.baselines["E"][0] == pytest.approx(1000.0)
        assert est.baselines["S"][0] == pytest.approx(550.0)

    def test_non_finite_baseline_leaves_side_without_baseline(self):
        est, device, _ = make_estimator()
        for _ in range(N):
            est.process(meas("E", 1.0))
        for mag in (1000.0, float("nan"), 1000.0):
            est.process(meas("E", mag))
        assert est.phase == "STEADY"
        assert "E" not in est.baselines
        for _ in range(3):
            est.process(meas("E", 900.0))
        assert device.requests == []


class TestSteadyState:
    def test_one_request_per_window(self):
        est, device, _ = make_estimator()
        warm_up_and_baseline(est)
        est.process(meas("E", 900.0, t=1.0))
        est.process(meas("E", 900.0, t=2.0))
        assert est.requests_sent == 0
        est.process(meas("E", 900.0, positive="S", t=3.0))
        assert est.requests_sent == 1

        (request,) = device.requests
        assert request.side == "E"
        assert request.time == 3.0
        assert request.positive_code == "S"
        assert request.magnitude == pytest.approx(900.0)
        assert request.baseline_magnitude == pytest.approx(1000.0)
        assert est.current_depth("E") == pytest.approx(5.0)

    def test_depth_rounded_to_one_decimal(self):
        est, _, _ = make_estimator()
        warm_up_and_baseline(est)
        for _ in range(3):
            est.process(meas("E", 984.6))  # 1.54% drop -> 0.77 mm
        assert est.get_depths() == {"E": pytest.approx(0.8)}

    def test_moving_average_of_last_three(self):
        est, _, _ = make_estimator()
        warm_up_and_baseline(est)
        for mag in (980.0, 960.0, 940.0, 920.0):  # 1, 2, 3, 4 mm
            for _ in range(3):
                est.process(meas("E", mag))
        assert est.requests_sent == 4
        assert est.current_depth("E") == pytest.approx(3.0)

    def test_sides_have_separate_windows(self):
        est, device, _ = make_estimator()
        for _ in range(N):
            est.process(meas("E", 1.0))
        est.process(meas("E", 1000.0))
        est.process(meas("S", 1000.0))
        est.process(meas("E", 1000.0))
        for side in ("E", "S", "E", "S", "E"):
            est.process(meas(side, 900.0))
        assert [r.side for r in device.requests] == ["E"]

    def test_side_without_baseline_dropped(self):
        est, device, _ = make_estimator()
        warm_up_and_baseline(est, side="E")
        for _ in range(3):
            est.process(meas("W", 900.0))
        assert device.requests == []
        assert est.requests_sent == 0

    def test_side_mismatch_discarded(self):
        est, device, _ = make_estimator(device=WrongSideInference())
        warm_up_and_baseline(est)
        for _ in range(3):
            est.process(meas("E", 900.0))
        assert len(device.requests) == 1
        assert est.failed_requests == 1
        assert est.current_depth("E") is None
        assert est.current_depth("W") is None

    def test_timeout_holds_last_depth(self):
        est, device, _ = make_estimator(device=FlakyInference())
        warm_up_and_baseline(est)
        for _ in range(3):
            est.process(meas("E", 900.0))
        assert est.current_depth("E") == pytest.approx(5.0)

        device.failing = True
        for _ in range(3):
            est.process(meas("E", 500.0))
        assert est.failed_requests == 1
        assert est.current_depth("E") == pytest.approx(5.0)

        # window was cleared, the next window is a fresh request
        device.failing = False
        for _ in range(3):
            est.process(meas("E", 900.0))
        assert est.requests_sent == 3

    def test_non_finite_window_skipped(self):
        est, device, _ = make_estimator(targets={"E": 0.0})
        warm_up_and_baseline(est)
        for mag in (900.0, float("nan"), 900.0):
            est.process(meas("E", mag))
        assert device.requests == []
        assert est.current_depth("E") is None

        # the window was cleared, the next full window is estimated
        for _ in range(3):
            est.process(meas("E", 900.0))
        assert len(device.requests) == 1
        assert est.current_depth("E") == pytest.approx(5.0)


class TestFeedback:
    def test_target_reached_deactivates_single_face_group(self):
        est, _, registry = make_estimator(targets={"E": 5.0})
        warm_up_and_baseline(est)
        for _ in range(3):
            est.process(meas("E", 900.0))
        single, combined = registry.groups
        assert not single.active
        assert combined.active

    def test_target_not_reached_keeps_group(self):
        est, _, registry = make_estimator(targets={"E": 5.1})
        warm_up_and_baseline(est)
        for _ in range(3):
            est.process(meas("E", 900.0))
        assert all(g.active for g in registry.groups)

    def test_no_target_no_feedback(self):
        est, _, registry = make_estimator(targets={})
        warm_up_and_baseline(est)
        for _ in range(3):
            est.process(meas("E", 100.0))
        assert all(g.active for g in registry.groups)


class TestQueue:
    def test_drain(self):
        est, _, _ = make_estimator()
        for _ in range(5):
            est.measurements.put(meas("E", 1000.0))
        assert est.drain() == 5
        assert est.count == 5
        assert est.drain() == 0

    @pytest.mark.asyncio
    async def test_run_processes_until_stopped(self):
        est, device, _ = make_estimator()
        task = asyncio.create_task(est.run())
        for _ in range(2 * N):
            est.measurements.put(meas("E", 1000.0))
        await asyncio.sleep(0.1)
        for _ in range(3):
            est.measurements.put(meas("E", 900.0))
        est.request_stop()
        await asyncio.wait_for(task, timeout=5)
        assert est.count == 2 * N + 3
        assert len(device.requests) == 1
        assert est.get_info()["depths"] == {"E": pytest.approx(5.0)}

    @pytest.mark.asyncio
    async def test_run_survives_processing_error(self):
        est, device, _ = make_estimator(device=BrokenInference())
        for _ in range(2 * N + 6):
            est.measurements.put(meas("E", 900.0))
        task = asyncio.create_task(est.run())
        await asyncio.sleep(0.1)
        assert not task.done()
        est.request_stop()
        await asyncio.wait_for(task, timeout=5)
        assert est.count == 2 * N + 6
        assert len(device.requests) == 2
        assert est.get_info()["failed_measurements"] == 2
