# -*- coding: utf-8 -*-
"""Writing run data to disk.

Two kinds of file are produced per run, both named from the run start time
(as `<save_dir>/<YYYY.MM.DD-HH.MM>.<suffix>`):

- `<stem>.impedance.csv`: one line per accepted measurement, columns
  `date,time,pos,neg,impedance,phase`.
- `<stem>.metadata.json`: run configuration, permutations, ablation group
  outcome and final depths, dumped once when the run ends.
"""

from __future__ import annotations

import os
import typing
from datetime import datetime

import numpy as np
import simplejson as json
from loguru import logger

if typing.TYPE_CHECKING:
    from rfablate.types import Measurement

MEASUREMENT_LOG_HEADER = "date,time,pos,neg,impedance,phase"


class NumpyEncoder(json.JSONEncoder):
    """Special json encoder for numpy types"""

    # o = an object to be encoded
    def default(self, o):
        if isinstance(o, np.integer):
            return int(o)
        if isinstance(o, np.floating):
            return float(o)
        if isinstance(o, np.ndarray):
            return o.tolist()
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        return json.JSONEncoder.default(self, o)


def get_run_stem(save_dir: str, start: datetime | None = None) -> str:
    """Path prefix shared by all files of a run (no suffix)."""
    if start is None:
        start = datetime.now()
    return os.path.join(save_dir, start.strftime("%Y.%m.%d-%H.%M"))


class MeasurementLog:
    """Append-only CSV writer for impedance measurements.

    Opened once per run, written by the scheduler only, closed when the run
    completes or is stopped. Closing twice is harmless.
    """

    def __init__(self, path: str):
        self.path = path
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        self._file = open(path, "w", newline="")
        self._file.write(MEASUREMENT_LOG_HEADER + "\n")
        self._file.flush()
        self.nlines = 0
        logger.info("Measurement log opened at {}", path)

    @classmethod
    def for_run(cls, save_dir: str, start: datetime | None = None) -> MeasurementLog:
        return cls(get_run_stem(save_dir, start) + ".impedance.csv")

    @property
    def closed(self) -> bool:
        return self._file.closed

    def write(self, meas: Measurement):
        if self._file.closed:
            logger.warning("Measurement log closed, dropping {}", meas)
            return
        now = datetime.now()
        line = ",".join(
            (
                now.strftime("%Y-%m-%d"),
                now.strftime("%H:%M:%S.%f")[:-3],
                meas.positive_code,
                meas.negative_code,
                str(meas.magnitude),
                str(meas.phase),
            )
        )
        self._file.write(line + "\n")
        self._file.flush()
        self.nlines += 1

    def close(self):
        if not self._file.closed:
            self._file.close()
            logger.info(
                "Measurement log closed ({} lines): {}", self.nlines, self.path
            )


def save_run_metadata(stem: str, metadata: dict) -> str:
    path = stem + ".metadata.json"
    with open(path, "w") as f:
        json.dump(metadata, f, cls=NumpyEncoder, indent=4)
    logger.info("Saved run metadata to {}", path)
    return path
