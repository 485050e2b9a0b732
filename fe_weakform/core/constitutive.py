"""構成則（材料モデル）の抽象インタフェース定義.

Protocol 定義:
  DesignVarProtocol      : 設計変数の取得・設定（構成則・物理モデル共通）。
  ConstitutiveProtocol   : 3D 固体用（応力・接線剛性・熱ひずみ・破損指標と設計感度）。

規約:
  - 評価メソッドは純関数。インスタンス状態を変更してよいのは set_design_vars のみ。
  - 物性ソースが無い場合はゼロを返す（縮退モード、例外にしない）。
  - 設計感度 add_*_dv_sens は dfdx に加算する（上書きしない）。
    dfdx は要素ローカルで、get_design_var_nums の順に並ぶ。
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class DesignVarProtocol(Protocol):
    """設計変数を持つオブジェクトの共通インタフェース."""

    def get_design_var_nums(
        self, elem_index: int, dv_nums: np.ndarray | None = None
    ) -> int:
        """設計変数のグローバル番号を dv_nums に書き込み、その数を返す.

        dv_nums が None または長さ不足の場合は数の問い合わせのみ（書込みなし）。
        """
        ...

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        """要素ローカル設計変数値を内部フィールドへ設定する."""
        ...

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        """内部フィールドの設計変数値を dvs へ書き込む."""
        ...

    def get_design_var_range(
        self, elem_index: int, lb: np.ndarray, ub: np.ndarray
    ) -> None:
        """設計変数の下限・上限を書き込む."""
        ...


@runtime_checkable
class ConstitutiveProtocol(DesignVarProtocol, Protocol):
    """3D 固体構成則の共通インタフェース.

    Voigt 表記: σ = [σxx, σyy, σzz, τyz, τxz, τxy]
                ε = [εxx, εyy, εzz, γyz, γxz, γxy]

    接線剛性は 21 成分（上三角、行優先）で表す。

    適合クラス例:
      - SolidConstitutive
    """

    def get_num_stresses(self) -> int:
        """応力成分数（3D 固体: 6）."""
        ...

    def eval_density(self, elem_index: int, pt: np.ndarray, X: np.ndarray):
        """点の密度."""
        ...

    def eval_specific_heat(self, elem_index: int, pt: np.ndarray, X: np.ndarray):
        """点の比熱."""
        ...

    def eval_stress(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> np.ndarray:
        """応力 σ = C·ε (6,)."""
        ...

    def eval_tangent_stiffness(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        """接線剛性 (21,)."""
        ...

    def eval_thermal_strain(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, theta
    ) -> np.ndarray:
        """温度上昇 theta に対する熱ひずみ (6,)."""
        ...

    def eval_heat_flux(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, grad: np.ndarray
    ) -> np.ndarray:
        """熱流束 q = κ·∇T (3,)."""
        ...

    def eval_failure(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ):
        """破損指標（スカラー）."""
        ...

    def eval_failure_strain_sens(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> tuple:
        """破損指標とそのひずみ微分 (fail, dfde)."""
        ...

    def add_stress_dv_sens(
        self,
        elem_index: int,
        scale,
        pt: np.ndarray,
        X: np.ndarray,
        e: np.ndarray,
        psi: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx += scale * psi·∂σ/∂x."""
        ...

    def add_density_dv_sens(
        self, elem_index: int, scale, pt: np.ndarray, X: np.ndarray, dfdx: np.ndarray
    ) -> None:
        """dfdx += scale * ∂ρ/∂x."""
        ...
