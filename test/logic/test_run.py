import asyncio
from datetime import datetime

import pytest
import simplejson as json
from loguru import logger

import rfablate.util
from rfablate.device import MockImpedanceMeter, MockSwitchFabric
from rfablate.meas import SCHED_STATE
from rfablate.meas.run import AblationRun
from rfablate.system import AblationSystem, SystemConfig
from rfablate.inference import MockDepthInference
from rfablate.types import DEPTH_INFERENCE, IMPEDANCE_METER, SWITCH_FABRIC, RunConfig
from rfablate.util import TEST_LOGLEVEL


class DropoutMeter(MockImpedanceMeter):
    """Returns "nan" on every third read."""

    def measure(self):
        mag, phase = super().measure()
        if self.reads % 3 == 0:
            return "nan", phase
        return mag, phase


def quick_config(tmp_path, **kwargs):
    kwargs.setdefault("interval_s", 0.001)
    kwargs.setdefault("pre_ablation_ms", 0)
    kwargs.setdefault("sweep_repeats", 1)
    return RunConfig(save_dir=str(tmp_path), **kwargs)


class TestAblationRun:
    @pytest.fixture(autouse=True, scope="class")
    def client_log(self):
        rfablate.util.start_log(log_level=TEST_LOGLEVEL, log_to_stdout=True, log_to_file=False)
        yield
        rfablate.util.shutdown_log()

    @pytest.fixture(autouse=True, scope="function")
    def log(self, request):
        logger.warning("STARTED Test '{}'".format(request.node.originalname))

        def fin():
            logger.warning("COMPLETED Test '{}' \n".format(request.node.originalname))

        request.addfinalizer(fin)

    @pytest.fixture(scope="class")
    def system(self):
        sys = AblationSystem("mock")
        sys.startup()
        yield sys
        sys.packdown()

    def test_faces_restrict_topology(self, system, tmp_path):
        run = AblationRun(system, quick_config(tmp_path, faces=["N", "E", "S"]), save=False)
        assert run.topology.internal == ("N", "E", "S")
        assert len(run.permutations) == 3
        assert run.stem is None

    def test_unknown_combination(self, system, tmp_path):
        with pytest.raises(ValueError):
            AblationRun(system, quick_config(tmp_path, combinations=["Q"]), save=False)

    @pytest.mark.asyncio
    async def test_run_to_completion(self, system, tmp_path):
        config = quick_config(
            tmp_path,
            faces=["N", "E", "S"],
            combinations=["N"],
            limits=[2],
            nominal_count=3,
        )
        start = datetime(2024, 1, 2, 3, 4)
        run = AblationRun(system, config, start=start)
        metadata = await run.run()

        assert metadata["scheduler"]["state"] == SCHED_STATE.COMPLETE
        assert metadata["scheduler"]["pulses"] == 2
        assert metadata["scheduler"]["measured"] == 9
        assert metadata["estimator"]["count"] == 9
        assert metadata["groups"][0]["is_complete"]

        csv = tmp_path / "2024.01.02-03.04.impedance.csv"
        lines = csv.read_text().splitlines()
        assert len(lines) == 10
        with open(tmp_path / "2024.01.02-03.04.metadata.json") as f:
            saved = json.load(f)
        assert saved["config"]["combinations"] == ["N"]
        assert saved["system"]["system_name"] == "mock"
        assert len(saved["permutations"]) == 3

    @pytest.mark.asyncio
    async def test_stop_request(self, system, tmp_path):
        config = quick_config(tmp_path, combinations=["N"], pre_ablation_ms=60000)
        run = AblationRun(system, config, save=False)
        task = asyncio.create_task(run.run())
        await asyncio.sleep(0.2)
        run.request_stop()
        metadata = await asyncio.wait_for(task, timeout=5)
        assert metadata["scheduler"]["state"] == SCHED_STATE.STOPPED
        assert not metadata["scheduler"]["is_complete"]

    @pytest.mark.asyncio
    async def test_without_depth_inference(self, tmp_path):
        sys_config = SystemConfig(
            system_name="no_inference",
            system_type=AblationSystem,
            devices_config={
                SWITCH_FABRIC: (MockSwitchFabric, {}),
                IMPEDANCE_METER: (MockImpedanceMeter, {}),
            },
        )
        system = AblationSystem(sys_config)
        system.startup()
        try:
            run = AblationRun(
                system,
                quick_config(tmp_path, faces=["N", "E"], combinations=["N"], max_cycles=2),
                save=False,
            )
            assert run.estimator is None
            metadata = await run.run()
            assert metadata["estimator"] is None
            assert metadata["scheduler"]["state"] == SCHED_STATE.COMPLETE
            assert metadata["scheduler"]["cycles"] == 2
        finally:
            system.packdown()

    @pytest.mark.asyncio
    async def test_non_finite_readings_keep_feedback_alive(self, tmp_path):
        sys_config = SystemConfig(
            system_name="dropout",
            system_type=AblationSystem,
            devices_config={
                SWITCH_FABRIC: (MockSwitchFabric, {}),
                IMPEDANCE_METER: (DropoutMeter, {"seed": 2}),
                DEPTH_INFERENCE: (MockDepthInference, {}),
            },
        )
        system = AblationSystem(sys_config)
        system.startup()
        try:
            config = quick_config(
                tmp_path,
                faces=["N", "E"],
                combinations=["E"],
                targets={"E": 0.0},
                interval_s=0.2,
                sweep_repeats=3,
                nominal_count=2,
                max_cycles=30,
                shuffle=False,
            )
            run = AblationRun(system, config, start=datetime(2024, 1, 2, 3, 5))
            metadata = await asyncio.wait_for(run.run(), timeout=20)

            assert metadata["scheduler"]["state"] == SCHED_STATE.COMPLETE
            assert metadata["scheduler"]["cycles"] < 30
            assert metadata["scheduler"]["skipped"] == metadata["scheduler"]["cycles"]
            assert not metadata["groups"][0]["active"]
            assert metadata["estimator"]["failed_measurements"] == 0
            assert "E" in metadata["estimator"]["depths"]
            assert (tmp_path / "2024.01.02-03.05.metadata.json").exists()
        finally:
            system.packdown()
