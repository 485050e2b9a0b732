"""点量（quantity of interest）・要素出力の種別定義.

QuantityType の整数値に意味はない。新しい種別は自由に追加してよい。
モデルが扱わない種別は長さ 0 の結果を返す（エラーではない）。
"""

from __future__ import annotations

from enum import IntEnum, IntFlag


class QuantityType(IntEnum):
    """点量の種別."""

    FAILURE_INDEX = 1
    ELEMENT_DENSITY = 2
    STRAIN_ENERGY_DENSITY = 3
    DISPLACEMENT = 4
    TEMPERATURE = 5
    HEAT_FLUX = 6


class ElementType(IntEnum):
    """可視化出力の要素クラス."""

    SOLID = 1
    SCALAR_3D = 2
    THERMOELASTIC_3D = 3
    BAR_1D = 4


class OutputFlag(IntFlag):
    """get_output_data の書込みフィールド選択."""

    NODES = 1
    DISPLACEMENTS = 2
    STRAINS = 4
    STRESSES = 8
    EXTRAS = 16


# 要素クラスごとの各フィールド名（OutputFlag の順）
_FIELD_NAMES: dict[ElementType, dict[OutputFlag, tuple[str, ...]]] = {
    ElementType.SOLID: {
        OutputFlag.NODES: ("X", "Y", "Z"),
        OutputFlag.DISPLACEMENTS: ("u", "v", "w"),
        OutputFlag.STRAINS: ("exx", "eyy", "ezz", "gyz", "gxz", "gxy"),
        OutputFlag.STRESSES: ("sxx", "syy", "szz", "syz", "sxz", "sxy"),
        OutputFlag.EXTRAS: ("failure", "dv1"),
    },
    ElementType.SCALAR_3D: {
        OutputFlag.NODES: ("X", "Y", "Z"),
        OutputFlag.DISPLACEMENTS: ("T",),
        OutputFlag.STRAINS: ("Tx", "Ty", "Tz"),
        OutputFlag.STRESSES: ("qx", "qy", "qz"),
        OutputFlag.EXTRAS: ("dv1",),
    },
    ElementType.THERMOELASTIC_3D: {
        OutputFlag.NODES: ("X", "Y", "Z"),
        OutputFlag.DISPLACEMENTS: ("u", "v", "w", "T"),
        OutputFlag.STRAINS: ("exx", "eyy", "ezz", "gyz", "gxz", "gxy"),
        OutputFlag.STRESSES: ("sxx", "syy", "szz", "syz", "sxz", "sxy"),
        OutputFlag.EXTRAS: ("failure", "dv1"),
    },
    ElementType.BAR_1D: {
        OutputFlag.NODES: ("X",),
        OutputFlag.DISPLACEMENTS: ("u", "w"),
        OutputFlag.STRAINS: ("ex",),
        OutputFlag.STRESSES: ("N",),
        OutputFlag.EXTRAS: ("A",),
    },
}

OUTPUT_FLAG_ORDER = (
    OutputFlag.NODES,
    OutputFlag.DISPLACEMENTS,
    OutputFlag.STRAINS,
    OutputFlag.STRESSES,
    OutputFlag.EXTRAS,
)


def output_field_names(etype: ElementType, write_flag: int) -> list[str]:
    """write_flag で選ばれたフィールド名を出力順に返す."""
    table = _FIELD_NAMES.get(ElementType(etype), {})
    names: list[str] = []
    for flag in OUTPUT_FLAG_ORDER:
        if write_flag & flag:
            names.extend(table.get(flag, ()))
    return names


def output_width(etype: ElementType, write_flag: int) -> int:
    """出力 1 行の幅."""
    return len(output_field_names(etype, write_flag))
