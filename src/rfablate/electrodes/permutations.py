"""Measurement permutations, ablation groups and the pre-charge split.

A `Permutation` assigns matrix columns to the positive and negative terminals
of the LCR meter for one impedance read. Ablation groups do the same for the
RF generator (see `rfablate.meas.groups`).
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from rfablate.electrodes.topology import ALL_INTERNAL, ElectrodeTopology, sort_columns
from rfablate.meas.groups import AblationGroup


@dataclass(frozen=True)
class Permutation:
    positive_code: tuple[str, ...]
    negative_code: tuple[str, ...]
    positive_columns: frozenset[str]
    negative_columns: frozenset[str]

    @property
    def positive_label(self) -> str:
        return "+".join(self.positive_code)

    @property
    def negative_label(self) -> str:
        return "+".join(self.negative_code)

    def to_dict(self) -> dict:
        return {
            "positive_code": list(self.positive_code),
            "negative_code": list(self.negative_code),
            "positive_columns": sort_columns(self.positive_columns),
            "negative_columns": sort_columns(self.negative_columns),
        }

    def __repr__(self):
        return f"Permutation({self.positive_label} -> {self.negative_label})"


def make_permutation(
    topology: ElectrodeTopology, positive: Sequence[str], negative: Sequence[str]
) -> Permutation:
    pos_cols = topology.union_columns(positive)
    neg_cols = topology.union_columns(negative)
    if pos_cols & neg_cols:
        raise ValueError(
            f"Faces {positive} and {negative} share columns {sort_columns(pos_cols & neg_cols)}"
        )
    return Permutation(tuple(positive), tuple(negative), pos_cols, neg_cols)


def _unordered_pairs(codes: Sequence[str]) -> list[tuple[str, str]]:
    # each face pairs only with the faces after it, so every pair occurs once
    return list(itertools.combinations(codes, 2))


def build_measurement_permutations(
    topology: ElectrodeTopology, include_external: bool = False
) -> list[Permutation]:
    """Ordered measurement sweep for one repetition.

    Every unordered pair of internal faces once, in topology order. With
    external electrodes: then each internal face (and all internal faces
    together) against each external electrode, then each unordered pair of
    external electrodes.
    """
    perms = [make_permutation(topology, [p], [n]) for p, n in _unordered_pairs(topology.internal)]
    if include_external:
        if not topology.external:
            logger.warning("External electrodes requested but topology has none")
        for ext in topology.external:
            for code in (ALL_INTERNAL,) + topology.internal:
                perms.append(make_permutation(topology, [code], [ext]))
        for p, n in _unordered_pairs(topology.external):
            perms.append(make_permutation(topology, [p], [n]))
    logger.debug("Built {} measurement permutations", len(perms))
    return perms


def parse_combination(combination: str) -> tuple[str, ...]:
    return tuple(code.strip() for code in combination.split(",") if code.strip())


def build_ablation_groups(
    topology: ElectrodeTopology,
    combinations: Sequence[str],
    limits: Sequence[int] | None = None,
    duration_ms: int = 0,
) -> list[AblationGroup]:
    """One group per requested combination such as ``"N,E"``.

    Positive columns are the named faces; negative columns are every other
    internal face, minus anything already positive. Empty combination strings
    are skipped.

    Raises
    ------
    ValueError
        If a combination names a face that is not an internal face, or if
        `limits` does not match `combinations`.
    """
    if limits is None or len(limits) == 0:
        limits = [0] * len(combinations)
    if len(limits) != len(combinations):
        raise ValueError(f"Got {len(limits)} limits for {len(combinations)} combinations")

    groups = []
    for combination, limit in zip(combinations, limits):
        sides = parse_combination(combination)
        if not sides:
            logger.debug("Skipping empty ablation combination")
            continue
        for side in sides:
            if not topology.is_internal(side):
                raise ValueError(f"Unknown internal face '{side}' in combination '{combination}'")
        positive = topology.union_columns(sides)
        others = [face for face in topology.internal if face not in sides]
        negative = topology.union_columns(others) - positive
        groups.append(
            AblationGroup(
                active_sides=sides,
                pos_electrodes=positive,
                neg_electrodes=negative,
                active_duration=int(duration_ms),
                count_limit=int(limit),
            )
        )
    return groups


def precharge_permutation(topology: ElectrodeTopology) -> Permutation:
    """Broad split of all internal columns used before the first sweep.

    The first half of each face's columns goes positive and the rest
    negative; single-column faces go positive.
    """
    positive: set[str] = set()
    negative: set[str] = set()
    for face in topology.internal:
        cols = sort_columns(topology.columns_for(face))
        split = (len(cols) + 1) // 2
        positive.update(cols[:split])
        negative.update(cols[split:])
    return Permutation(
        (ALL_INTERNAL,), (ALL_INTERNAL,), frozenset(positive), frozenset(negative)
    )
