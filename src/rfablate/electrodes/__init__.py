"""Electrode faces, their matrix columns, and the connection sets built from
them."""

from .permutations import (
    Permutation,
    build_ablation_groups,
    build_measurement_permutations,
    make_permutation,
    parse_combination,
    precharge_permutation,
)
from .topology import (
    ALL_INTERNAL,
    DEFAULT_TOPOLOGY,
    EXTERNAL_FACES,
    INTERNAL_FACES,
    ElectrodeTopology,
    sort_columns,
)

__all__ = [
    "ALL_INTERNAL",
    "DEFAULT_TOPOLOGY",
    "EXTERNAL_FACES",
    "INTERNAL_FACES",
    "ElectrodeTopology",
    "Permutation",
    "build_ablation_groups",
    "build_measurement_permutations",
    "make_permutation",
    "parse_combination",
    "precharge_permutation",
]
