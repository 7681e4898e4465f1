"""Assemble and run one ablation run on a system.

`AblationRun` builds the permutations, ablation groups and pre-charge split
from the system's electrode wiring and the run configuration, then runs the
scheduler and the depth estimator side by side on one event loop. The two
share only the measurement queue and the group registry.
"""

from __future__ import annotations

import asyncio
import queue
from datetime import datetime
from typing import Optional

from loguru import logger

from rfablate.electrodes import (
    ElectrodeTopology,
    build_ablation_groups,
    build_measurement_permutations,
    precharge_permutation,
)
from rfablate.meas.estimator import DepthEstimator
from rfablate.meas.groups import AblationGroupRegistry
from rfablate.meas.scheduler import DutyCycleScheduler
from rfablate.system import AblationSystem
from rfablate.types import RunConfig
from rfablate.util.save import MeasurementLog, get_run_stem, save_run_metadata


class AblationRun:
    def __init__(
        self,
        system: AblationSystem,
        config: RunConfig,
        topology: Optional[ElectrodeTopology] = None,
        start: Optional[datetime] = None,
        save: bool = True,
    ):
        self.system = system
        self.config = config
        self.start_time = start or datetime.now()

        topology = topology or system.topology
        if config.faces:
            topology = topology.restricted(config.faces)
        self.topology = topology

        self.permutations = build_measurement_permutations(topology, config.external)
        self.precharge = precharge_permutation(topology)
        self.registry = AblationGroupRegistry(
            build_ablation_groups(
                topology, config.combinations, config.limits, config.active_duration_ms
            )
        )
        self.measurements: queue.Queue = queue.Queue()

        self.save = save
        self.stem = get_run_stem(config.save_dir, self.start_time) if save else None
        measurement_log = MeasurementLog.for_run(config.save_dir, self.start_time) if save else None

        self.scheduler = DutyCycleScheduler(
            switch=system.switch_fabric(),
            meter=system.impedance_meter(),
            permutations=self.permutations,
            registry=self.registry,
            precharge=self.precharge,
            measurements=self.measurements,
            config=config,
            measurement_log=measurement_log,
        )

        inference = system.depth_inference()
        if inference is None:
            logger.warning("No depth inference device, running without depth feedback")
            self.estimator = None
        else:
            self.estimator = DepthEstimator(
                measurements=self.measurements,
                registry=self.registry,
                inference=inference,
                nominal_count=config.effective_nominal_count,
                targets=config.targets,
            )

    def request_stop(self):
        self.scheduler.request_stop()

    async def run(self) -> dict:
        """Run until the scheduler completes or is stopped, then let the
        estimator drain what is left. Returns the run metadata."""
        logger.info("Starting ablation run {}", self.config)
        estimator_task = None
        if self.estimator is not None:
            estimator_task = asyncio.create_task(self.estimator.run())
        try:
            await self.scheduler.run()
        finally:
            if estimator_task is not None:
                self.estimator.request_stop()
                await estimator_task
        metadata = self.get_metadata()
        if self.save:
            save_run_metadata(self.stem, metadata)
        return metadata

    def get_metadata(self) -> dict:
        return {
            "start": self.start_time.isoformat(),
            "config": self.config.to_dict(),
            "topology": self.topology.to_dict(),
            "precharge": self.precharge.to_dict(),
            "permutations": [p.to_dict() for p in self.permutations],
            "groups": self.registry.summary(),
            "scheduler": self.scheduler.get_info(),
            "estimator": self.estimator.get_info() if self.estimator else None,
            "system": self.system.get_metadata(),
        }
