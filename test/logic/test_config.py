from datetime import datetime

import pytest
import simplejson as json
from loguru import logger

from rfablate.types import Measurement, RunConfig
from rfablate.util import MeasurementLog, get_run_stem, save_run_metadata


class TestRunConfig:
    def test_defaults(self):
        config = RunConfig()
        assert config.interval_s == 10
        assert config.active_duration_ms == 10000
        assert config.combinations == []
        assert config.limits == []
        assert config.shuffle
        assert config.max_cycles == 0

    def test_limits_default_to_unlimited(self):
        config = RunConfig(combinations=["N", "S"])
        assert config.limits == [0, 0]

    def test_faces_without_nominal_count_warns(self):
        messages = []
        sink = logger.add(messages.append, level="WARNING", format="{message}")
        try:
            RunConfig(faces=["N", "E"])
            RunConfig(faces=["N", "E"], nominal_count=3)
            RunConfig()
        finally:
            logger.remove(sink)
        assert len(messages) == 1
        assert "nominal_count defaults to 15" in messages[0]

    def test_limits_length_mismatch(self):
        with pytest.raises(ValueError, match="limits"):
            RunConfig(combinations=["N", "S"], limits=[1])

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"interval_s": 0},
            {"combinations": ["N"], "limits": [-1]},
            {"targets": {"N": -1.0}},
            {"nominal_count": 0},
            {"sweep_repeats": 0},
            {"max_cycles": -1},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RunConfig(**kwargs)

    def test_nominal_count(self):
        assert RunConfig().effective_nominal_count == 15
        assert RunConfig(external=True).effective_nominal_count == 30
        assert RunConfig(nominal_count=4).effective_nominal_count == 4

    def test_fractional_interval(self):
        assert RunConfig(interval_s=2.5).active_duration_ms == 2500

    def test_to_dict(self):
        config = RunConfig(combinations=["N,E"], targets={"N": 5.0}, seed=2)
        d = config.to_dict()
        assert d["combinations"] == ["N,E"]
        assert d["targets"] == {"N": 5.0}
        assert RunConfig.from_dict(d).to_dict() == d
        assert "targets={'N': 5.0}" in repr(config)


class TestSave:
    def test_run_stem(self, tmp_path):
        stem = get_run_stem(str(tmp_path), datetime(2024, 3, 5, 14, 7))
        assert stem == str(tmp_path / "2024.03.05-14.07")

    def test_measurement_log(self, tmp_path):
        path = tmp_path / "sub" / "x.impedance.csv"
        log = MeasurementLog(str(path))
        log.write(Measurement(1.0, "N", "E", 998.5, -10.25))
        log.close()
        log.close()
        log.write(Measurement(2.0, "N", "E", 998.5, -10.25))  # dropped

        lines = path.read_text().splitlines()
        assert lines[0] == "date,time,pos,neg,impedance,phase"
        assert len(lines) == 2
        assert lines[1].split(",")[2:] == ["N", "E", "998.5", "-10.25"]
        assert log.nlines == 1

    def test_metadata_handles_sets(self, tmp_path):
        path = save_run_metadata(str(tmp_path / "run"), {"cols": frozenset({"c1", "c0"})})
        with open(path) as f:
            assert json.load(f) == {"cols": ["c0", "c1"]}


class TestMessages:
    def test_measurement_is_frozen(self):
        meas = Measurement(1.5, "N", "E", 998.5, -10.25)
        assert meas.side == "E"
        with pytest.raises(AttributeError):
            meas.magnitude = 1.0

    def test_measurement_msgpack(self):
        meas = Measurement(1.5, "N+E", "X", 998.5, -10.25)
        assert Measurement.from_msgpack(meas.to_msgpack()) == meas
