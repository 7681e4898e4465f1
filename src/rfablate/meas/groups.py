"""Ablation groups and their registry.

A group is one requested face combination driven by the RF generator. The
scheduler scans the registry after every measurement sweep; the depth
estimator can only switch groups off, through `deactivate_reached`.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Iterable, Mapping

from loguru import logger


@dataclass(repr=False)
class AblationGroup:
    """One ablation face combination.

    Lifecycle: configured (active=False) -> active -> exhausted, where
    exhausted means count_usage == count_limit > 0, is_complete=True,
    active=False and active_duration=0. A count_limit of 0 never exhausts.
    """

    active_sides: tuple[str, ...]
    pos_electrodes: frozenset[str]
    neg_electrodes: frozenset[str]
    active_duration: int  # ms
    count_limit: int = 0
    count_usage: int = 0
    active: bool = False
    is_complete: bool = False

    @property
    def name(self) -> str:
        return ",".join(self.active_sides)

    def eligible(self) -> bool:
        return self.active and (self.count_limit == 0 or self.count_usage < self.count_limit)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["active_sides"] = list(self.active_sides)
        d["pos_electrodes"] = sorted(self.pos_electrodes)
        d["neg_electrodes"] = sorted(self.neg_electrodes)
        return d

    def __repr__(self):
        return (
            f"AblationGroup({self.name}, usage={self.count_usage}/{self.count_limit}, "
            + f"active={self.active}, complete={self.is_complete})"
        )


class AblationGroupRegistry:
    """Holds the groups of a run. Thread safe.

    Every mutation happens under one lock, since the scheduler and the
    estimator run on different threads.
    """

    def __init__(self, groups: Iterable[AblationGroup]):
        self._groups = list(groups)
        self._lock = threading.Lock()

    @property
    def groups(self) -> tuple[AblationGroup, ...]:
        return tuple(self._groups)

    def __len__(self):
        return len(self._groups)

    def activate_all(self) -> None:
        with self._lock:
            for group in self._groups:
                if not group.is_complete:
                    group.active = True

    def collect_work(self) -> list[tuple[AblationGroup, int]]:
        """Scan for eligible groups, in configuration order.

        Each eligible group has its usage incremented and is returned with the
        hold (ms) it had when it was enqueued. A group reaching its limit is
        marked exhausted here, so its final pulse still runs.
        """
        work = []
        with self._lock:
            for group in self._groups:
                if not group.eligible():
                    continue
                group.count_usage += 1
                work.append((group, group.active_duration))
                if group.count_limit > 0 and group.count_usage >= group.count_limit:
                    group.is_complete = True
                    group.active = False
                    group.active_duration = 0
                    logger.info(
                        "Ablation group {} exhausted after {} activations",
                        group.name,
                        group.count_usage,
                    )
        return work

    def deactivate_reached(self, reached: Mapping[str, bool]) -> list[AblationGroup]:
        """Switch off single-face groups whose face reached its target depth.

        Groups are never reactivated, and groups of several faces are left
        alone.
        """
        deactivated = []
        with self._lock:
            for group in self._groups:
                if len(group.active_sides) != 1 or not group.active:
                    continue
                if reached.get(group.active_sides[0], False):
                    group.active = False
                    deactivated.append(group)
                    logger.info("Target depth reached, deactivated group {}", group.name)
        return deactivated

    def all_complete(self) -> bool:
        with self._lock:
            return not any(group.eligible() for group in self._groups)

    def summary(self) -> list[dict]:
        with self._lock:
            return [group.to_dict() for group in self._groups]
