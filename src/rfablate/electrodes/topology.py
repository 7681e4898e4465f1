"""Face code to switch-matrix column mapping.

The applicator carries internal electrode faces (north, east, south, west,
bottom, top) and optionally a ring of external electrodes. Each face is wired
to one or more matrix columns. An `ElectrodeTopology` is built once at
startup and passed to everything that needs column lookups.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

ALL_INTERNAL = "AllInternal"
INTERNAL_FACES = ("N", "E", "S", "W", "B", "T")
EXTERNAL_FACES = ("X", "Y", "Z")


def _column_index(column: str) -> int:
    return int(column.lstrip("c"))


def sort_columns(columns: Iterable[str]) -> list[str]:
    """Sort column ids numerically (c2 before c10)."""
    return sorted(columns, key=_column_index)


@dataclass(frozen=True, eq=False)
class ElectrodeTopology:
    """Immutable face -> columns lookup.

    Parameters
    ----------
    columns : Mapping[str, Sequence[str]]
        Column ids per face code, e.g. ``{"N": ("c0", "c1")}``.
    internal : Sequence[str]
        Internal face codes, in the order permutations are built.
    external : Sequence[str]
        External ring electrode codes, may be empty.
    """

    columns: Mapping[str, tuple[str, ...]]
    internal: tuple[str, ...]
    external: tuple[str, ...] = field(default=())

    def __post_init__(self):
        object.__setattr__(
            self,
            "columns",
            MappingProxyType({k: tuple(v) for k, v in self.columns.items()}),
        )
        object.__setattr__(self, "internal", tuple(self.internal))
        object.__setattr__(self, "external", tuple(self.external))

        faces = self.internal + self.external
        if len(set(faces)) != len(faces):
            raise ValueError(f"Duplicate face codes in topology: {faces}")
        if ALL_INTERNAL in faces:
            raise ValueError(f"'{ALL_INTERNAL}' is reserved")
        seen: dict[str, str] = {}
        for face in faces:
            if not self.columns.get(face):
                raise ValueError(f"No columns for face '{face}'")
            for col in self.columns[face]:
                if col in seen:
                    raise ValueError(
                        f"Column {col} wired to both '{seen[col]}' and '{face}'"
                    )
                seen[col] = face

    @property
    def faces(self) -> tuple[str, ...]:
        return self.internal + self.external

    def is_internal(self, code: str) -> bool:
        return code in self.internal

    def columns_for(self, code: str) -> frozenset[str]:
        """Columns wired to `code`. `AllInternal` is every internal face.

        Raises
        ------
        ValueError
            If `code` is not a face of this topology
        """
        if code == ALL_INTERNAL:
            return self.union_columns(self.internal)
        if code not in self.faces:
            raise ValueError(f"Unknown face code '{code}' (known: {self.faces})")
        return frozenset(self.columns[code])

    def union_columns(self, codes: Iterable[str]) -> frozenset[str]:
        cols: frozenset[str] = frozenset()
        for code in codes:
            cols |= self.columns_for(code)
        return cols

    def restricted(
        self, internal: Sequence[str], external: Optional[Sequence[str]] = None
    ) -> ElectrodeTopology:
        """Copy of this topology using only some of its faces."""
        external = self.external if external is None else external
        for face in tuple(internal) + tuple(external):
            self.columns_for(face)
        return ElectrodeTopology(
            columns={f: self.columns[f] for f in tuple(internal) + tuple(external)},
            internal=tuple(internal),
            external=tuple(external),
        )

    def to_dict(self) -> dict:
        return {
            "columns": {k: list(v) for k, v in self.columns.items()},
            "internal": list(self.internal),
            "external": list(self.external),
        }

    def __repr__(self):
        return (
            f"ElectrodeTopology(internal={self.internal}, external={self.external})"
        )


# PXIe-2529 wiring of the applicator
DEFAULT_TOPOLOGY = ElectrodeTopology(
    columns={
        "N": ("c0", "c1", "c2", "c3"),
        "E": ("c4", "c5", "c6", "c7"),
        "S": ("c8", "c9", "c10", "c11"),
        "W": ("c12", "c13", "c14", "c15"),
        "B": ("c16", "c17", "c18", "c19"),
        "T": ("c20",),
        "X": ("c25",),
        "Y": ("c26",),
        "Z": ("c27",),
    },
    internal=INTERNAL_FACES,
    external=EXTERNAL_FACES,
)
