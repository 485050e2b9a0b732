"""スカラー型と有限差分設定のグローバル構成.

全ての評価経路は一つのスカラー型で計算する。実数モード（float64）と
複素ステップ微分モード（complex128）を切り替えられるが、これはプロセス
起動時（import 時）に一度だけ決まる構成値であり、呼び出しごとの引数ではない。

環境変数:
  FE_WEAKFORM_SCALAR = "real" | "complex"   （既定: "real"）

物理モデル・構成則はスカラー型で分岐しない。出力配列の dtype は
np.result_type による型昇格で決まるため、複素入力を与えれば
同じコード経路がそのまま複素ステップ微分に使える。
"""

from __future__ import annotations

import os
from typing import Literal, NamedTuple

import numpy as np

ScalarMode = Literal["real", "complex"]

_ENV_VAR = "FE_WEAKFORM_SCALAR"


def _read_scalar_mode() -> ScalarMode:
    value = os.environ.get(_ENV_VAR, "real").strip().lower()
    if value not in ("real", "complex"):
        raise ValueError(f"{_ENV_VAR} は 'real' か 'complex': {value!r}")
    return value  # type: ignore[return-value]


SCALAR_MODE: ScalarMode = _read_scalar_mode()


class FDSettings(NamedTuple):
    """有限差分検証の既定値.

    Attributes:
        dh: 摂動ステップ
        rtol: 相対許容誤差
        atol: 絶対許容誤差
    """

    dh: float
    rtol: float
    atol: float


# 中心差分: 打切り誤差 O(h²) と丸め誤差 O(eps/h) の釣り合い
REAL_FD_SETTINGS = FDSettings(dh=1e-6, rtol=1e-5, atol=1e-7)
# 複素ステップ: 打切り誤差・桁落ちがないので極小ステップと厳しい許容値
COMPLEX_FD_SETTINGS = FDSettings(dh=1e-30, rtol=1e-12, atol=1e-14)


def is_complex_mode() -> bool:
    """複素ステップモードで構成されているか."""
    return SCALAR_MODE == "complex"


def scalar_dtype() -> np.dtype:
    """構成されたスカラー型の numpy dtype."""
    return np.dtype(np.complex128) if is_complex_mode() else np.dtype(np.float64)


def default_fd_settings(complex_step: bool | None = None) -> FDSettings:
    """検証ハーネスの既定ステップ・許容値を返す.

    Args:
        complex_step: None の場合はグローバル構成に従う
    """
    if complex_step is None:
        complex_step = is_complex_mode()
    return COMPLEX_FD_SETTINGS if complex_step else REAL_FD_SETTINGS
