"""物理モデル（基底関数に依存しない弱形式評価）の抽象インタフェース定義.

Protocol 階層:
  ElementModelProtocol : 弱形式係数・Jacobian・随伴設計感度・点量。
  StrainModelProtocol  : + ひずみとその状態変数感度。

ElementModelBase は Protocol の既定動作（設計変数なし、点量は長さ 0、
感度の加算なし）を与える基底クラス。可変な共有状態は持たない。

弱形式（d=空間次元, U=(u_0..u_{v-1})）:
  ∫ Σ_i ( DUt[i,0] δu_i + DUt[i,1] δu_i,t + DUt[i,2] δu_i,tt
          + Σ_j DUx[i,j] δu_i,xj ) dΩ = 0

時間微分と空間微分は分離していると仮定する（DUt は Ux に依存せず、
DUx は Ut の時間微分に依存しない）。
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from fe_weakform.core.layout import (
    NUM_TIME_DERIVS,
    adjoint_weights,
    flatten_state,
    jacobian_size,
)
from fe_weakform.core.results import (
    AdjXptSensProduct,
    PointQuantity,
    QuantitySens,
    StrainSVSens,
    WeakForm,
    WeakJacobian,
)
from fe_weakform.core.types import OUTPUT_FLAG_ORDER, ElementType


@runtime_checkable
class ElementModelProtocol(Protocol):
    """物理モデルの共通インタフェース.

    全ての評価メソッドは引数のみの純関数であり、異なる要素・積分点に対して
    並行に呼び出してよい。

    適合クラス例:
      - LinearElasticity3D       (3 変数, 3D)
      - HeatConduction3D         (1 変数, 3D)
      - LinearThermoelasticity3D (4 変数, 3D)
      - VonKarmanBar1D           (2 変数, 1D)
    """

    def get_spatial_dim(self) -> int: ...

    def get_vars_per_node(self) -> int: ...

    def get_element_type(self) -> ElementType: ...

    def get_design_var_nums(
        self, elem_index: int, dv_nums: np.ndarray | None = None
    ) -> int: ...

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None: ...

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None: ...

    def get_design_var_range(
        self, elem_index: int, lb: np.ndarray, ub: np.ndarray
    ) -> None: ...

    def eval_weak_integrand(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> WeakForm:
        """弱形式係数 (DUt, DUx) を評価する.

        Args:
            elem_index: ローカル要素番号
            time: 時刻
            n: 積分点番号
            pt: 積分点のパラメトリック座標
            X: 積分点の物理座標 (3,)
            Ut: (vars_per_node, 3) 状態変数とその 1 階・2 階時間微分
            Ux: (vars_per_node, spatial_dim) 状態変数の空間微分

        Returns:
            WeakForm: (DUt, DUx)
        """
        ...

    def eval_weak_jacobian(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> WeakJacobian:
        """弱形式係数と ∂(DUt, DUx)/∂(Ut, Ux) を評価する.

        DUt, DUx は eval_weak_integrand と同一でなければならない。
        """
        ...

    def add_weak_adj_product(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        Psi: np.ndarray,
        Psix: np.ndarray,
        scale,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx += scale * ∂/∂x [Psi·ΣDUt + Psix:DUx]（解析微分、加算のみ）."""
        ...

    def eval_weak_adj_xpt_sens_product(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        Psi: np.ndarray,
        Psix: np.ndarray,
    ) -> AdjXptSensProduct: ...

    def eval_point_quantity(
        self,
        elem_index: int,
        quantity_type: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Xd: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> PointQuantity: ...

    def add_point_quantity_dv_sens(
        self,
        elem_index: int,
        quantity_type: int,
        time: float,
        scale,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Xd: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        dfdq: np.ndarray,
        dfdx: np.ndarray,
    ) -> None: ...

    def eval_point_quantity_sens(
        self,
        elem_index: int,
        quantity_type: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Xd: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        dfdq: np.ndarray,
    ) -> QuantitySens: ...

    def get_output_data(
        self,
        elem_index: int,
        time: float,
        etype: ElementType,
        write_flag: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> np.ndarray: ...


@runtime_checkable
class StrainModelProtocol(ElementModelProtocol, Protocol):
    """ひずみを定義する物理モデル（弾性系）のインタフェース."""

    def eval_strain(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
    ) -> np.ndarray: ...

    def eval_strain_sv_sens(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        dfde: np.ndarray,
    ) -> StrainSVSens: ...


def _result_dtype(*arrays) -> np.dtype:
    """入力の型昇格結果（float64 以上）."""
    return np.result_type(np.float64, *arrays)


class ElementModelBase:
    """ElementModelProtocol の既定動作.

    サブクラスは spatial_dim, vars_per_node, element_type を定義し、
    eval_weak_integrand / eval_weak_jacobian を実装する。

    Attributes:
        is_symmetric: 弱形式が状態について線形かつ対称（相反定理 a·R(b) = b·R(a)
            が成り立つ）
    """

    spatial_dim: int
    vars_per_node: int
    element_type: ElementType
    is_symmetric: bool = False

    def get_spatial_dim(self) -> int:
        return self.spatial_dim

    def get_vars_per_node(self) -> int:
        return self.vars_per_node

    def get_element_type(self) -> ElementType:
        return self.element_type

    # ------------------------------------------------------------------
    # 設計変数（既定: なし）
    # ------------------------------------------------------------------

    def get_design_var_nums(
        self, elem_index: int, dv_nums: np.ndarray | None = None
    ) -> int:
        return 0

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        return None

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        return None

    def get_design_var_range(
        self, elem_index: int, lb: np.ndarray, ub: np.ndarray
    ) -> None:
        return None

    # ------------------------------------------------------------------
    # 弱形式
    # ------------------------------------------------------------------

    def _zero_weak_form(self, *arrays) -> tuple[np.ndarray, np.ndarray]:
        dtype = _result_dtype(*arrays)
        DUt = np.zeros((self.vars_per_node, NUM_TIME_DERIVS), dtype=dtype)
        DUx = np.zeros((self.vars_per_node, self.spatial_dim), dtype=dtype)
        return DUt, DUx

    def _zero_jacobian(self, *arrays) -> np.ndarray:
        size = jacobian_size(self.vars_per_node, self.spatial_dim)
        return np.zeros((size, size), dtype=_result_dtype(*arrays))

    def add_weak_adj_product(
        self, elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, scale, dfdx
    ) -> None:
        return None

    def eval_weak_adj_xpt_sens_product(
        self,
        elem_index: int,
        time: float,
        n: int,
        pt: np.ndarray,
        X: np.ndarray,
        Ut: np.ndarray,
        Ux: np.ndarray,
        Psi: np.ndarray,
        Psix: np.ndarray,
    ) -> AdjXptSensProduct:
        """随伴-残差積と X, Ux, Psix に関する微分.

        物理座標 X に陽に依存しないモデルでは dfdX = 0。
        dfdUx は Jacobian の行を随伴重みで縮約して得る:
          dfdUx = (w @ Jac)[Ux 列],  w = adjoint_weights(Psi, Psix)
        基底関数を介した節点座標への連鎖は呼び出し側（要素）の責務。
        """
        res = self.eval_weak_jacobian(elem_index, time, n, pt, X, Ut, Ux)
        w = adjoint_weights(Psi, Psix)
        product = w @ flatten_state(res.DUt, res.DUx)
        dfdU = (w @ res.Jac).reshape(self.vars_per_node, -1)
        dfdUx = dfdU[:, NUM_TIME_DERIVS:].copy()
        dfdX = np.zeros(3, dtype=_result_dtype(X, Ux, Psix))
        return AdjXptSensProduct(
            product=product, dfdX=dfdX, dfdUx=dfdUx, dfdPsix=res.DUx.copy()
        )

    # ------------------------------------------------------------------
    # 点量（既定: 未対応 → 長さ 0）
    # ------------------------------------------------------------------

    def eval_point_quantity(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
    ) -> PointQuantity:
        return PointQuantity(length=0, quantity=np.zeros(0, dtype=_result_dtype(Ut, Ux)))

    def add_point_quantity_dv_sens(
        self, elem_index, quantity_type, time, scale, n, pt, X, Xd, Ut, Ux, dfdq, dfdx
    ) -> None:
        return None

    def _zero_quantity_sens(self, X, Xd, Ut, Ux, dfdq) -> QuantitySens:
        dtype = _result_dtype(X, Xd, Ut, Ux, dfdq)
        return QuantitySens(
            dfdX=np.zeros(np.shape(X), dtype=dtype),
            dfdXd=np.zeros(np.shape(Xd), dtype=dtype),
            dfdUt=np.zeros((self.vars_per_node, NUM_TIME_DERIVS), dtype=dtype),
            dfdUx=np.zeros((self.vars_per_node, self.spatial_dim), dtype=dtype),
        )

    def eval_point_quantity_sens(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux, dfdq
    ) -> QuantitySens:
        return self._zero_quantity_sens(X, Xd, Ut, Ux, dfdq)

    # ------------------------------------------------------------------
    # 可視化出力
    # ------------------------------------------------------------------

    def _pack_output(
        self,
        etype: ElementType,
        write_flag: int,
        sections: dict,
    ) -> np.ndarray:
        """write_flag で選ばれたフィールドを OutputFlag の順に連結する.

        要素クラスが一致しない場合は空行を返す。
        """
        if etype != self.element_type:
            return np.zeros(0)
        parts = [np.atleast_1d(sections[f]) for f in OUTPUT_FLAG_ORDER if write_flag & f]
        if not parts:
            return np.zeros(0)
        return np.concatenate(parts)


class ConstitutiveModelBase(ElementModelBase):
    """構成則を保持し、設計変数の扱いを構成則へ委譲する物理モデル.

    設計変数の順序と dfdx のインデックスは構成則の get_design_var_nums に従う。

    Args:
        con: 構成則（複数の要素・モデルで共有してよい）
    """

    def __init__(self, con) -> None:
        self.con = con

    def get_design_var_nums(
        self, elem_index: int, dv_nums: np.ndarray | None = None
    ) -> int:
        return self.con.get_design_var_nums(elem_index, dv_nums)

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        self.con.set_design_vars(elem_index, dvs)

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        self.con.get_design_vars(elem_index, dvs)

    def get_design_var_range(
        self, elem_index: int, lb: np.ndarray, ub: np.ndarray
    ) -> None:
        self.con.get_design_var_range(elem_index, lb, ub)

    def _design_value(self, elem_index: int) -> float:
        """出力用の先頭設計変数値（無ければ 0）."""
        num = self.con.get_design_var_nums(elem_index)
        if num == 0:
            return 0.0
        dvs = np.zeros(num, dtype=complex)
        self.con.get_design_vars(elem_index, dvs)
        return float(dvs[0].real)
