"""Run configuration for an ablation run."""

from dataclasses import dataclass, field
from typing import Optional

from loguru import logger
from mashumaro import DataClassDictMixin

from rfablate.util.defaults import (
    DEFAULT_INTERVAL_S,
    NOMINAL_COUNT_EXTERNAL,
    NOMINAL_COUNT_INTERNAL,
    PRE_ABLATION_MS,
    READY_RETRIES,
    SWEEP_REPEATS,
)


@dataclass(kw_only=True, repr=False)
class RunConfig(DataClassDictMixin):
    """Operator inputs for one run.

    Attributes
    ----------
    interval_s : float
        Measurement interval, also the default hold of each ablation pulse.
    combinations : list[str]
        Requested ablation side combinations, e.g. ``["N,E", "S"]``.
    limits : list[int]
        Activation limit per combination (0 = until depth feedback stops it).
        Empty means unlimited for every combination.
    external : bool
        Include the external ring electrodes in measurement sweeps.
    faces : list[str]
        Internal faces to use, empty for every face of the system wiring.
        Restricting faces shortens a sweep but not `nominal_count`, set that
        to the new sweep length or warm-up and baseline span several sweeps.
    targets : dict[str, float]
        Target depth per face code. Faces without a target never trigger
        feedback.
    nominal_count : int | None
        Measurements per full sweep used to gate warm-up and baseline. None
        picks 15 (internal only) or 30 (with external electrodes).
    max_cycles : int
        Number of measurement sweeps before the run completes (0 = no cap).
    """

    interval_s: float = DEFAULT_INTERVAL_S
    combinations: list[str] = field(default_factory=list)
    limits: list[int] = field(default_factory=list)
    external: bool = False
    faces: list[str] = field(default_factory=list)
    targets: dict[str, float] = field(default_factory=dict)
    save_dir: str = "./rfablate_output/"
    shuffle: bool = True
    seed: Optional[int] = None
    nominal_count: Optional[int] = None
    pre_ablation_ms: int = PRE_ABLATION_MS
    sweep_repeats: int = SWEEP_REPEATS
    ready_retries: int = READY_RETRIES
    max_cycles: int = 0

    def __post_init__(self):
        if self.interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {self.interval_s}")
        if not self.limits:
            self.limits = [0] * len(self.combinations)
        if len(self.limits) != len(self.combinations):
            raise ValueError(
                f"Got {len(self.limits)} limits for {len(self.combinations)} combinations"
            )
        if any(limit < 0 for limit in self.limits):
            raise ValueError(f"Limits must be >= 0, got {self.limits}")
        if any(depth < 0 for depth in self.targets.values()):
            raise ValueError(f"Target depths must be >= 0, got {self.targets}")
        if self.nominal_count is not None and self.nominal_count < 1:
            raise ValueError(f"nominal_count must be >= 1, got {self.nominal_count}")
        if self.sweep_repeats < 1 or self.ready_retries < 1:
            raise ValueError("sweep_repeats and ready_retries must be >= 1")
        if self.max_cycles < 0 or self.pre_ablation_ms < 0:
            raise ValueError("max_cycles and pre_ablation_ms must be >= 0")
        if self.faces and self.nominal_count is None:
            logger.warning(
                "faces={} restricts the sweep but nominal_count defaults to {}, "
                "warm-up and baseline will span several sweeps",
                self.faces,
                self.effective_nominal_count,
            )

    @property
    def active_duration_ms(self) -> int:
        return int(round(self.interval_s * 1000))

    @property
    def effective_nominal_count(self) -> int:
        if self.nominal_count is not None:
            return self.nominal_count
        return NOMINAL_COUNT_EXTERNAL if self.external else NOMINAL_COUNT_INTERNAL

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"{self.__class__.__name__}({fields})"
