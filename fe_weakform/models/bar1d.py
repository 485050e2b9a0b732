"""1D von Kármán バー（軸変位 u とたわみ w の幾何学的非線形）.

変数: U = (u, w)、空間次元 1。構成則を持たず、物性を直接保持する。
断面積 A が設計変数。

弱形式:
  ∫ ( ρA ü δu + ρA ẅ δw + N δε ) dx = 0
  ε = u,x + w,x² / 2
  N = E A ε
  δε = δu,x + w,x δw,x  →  DUx = [N, N w,x]

Jacobian（ブロック = [t0, t1, t2, x]、u → 0..3, w → 4..7）:
  ∂DUx[u]/∂u,x = EA        ∂DUx[u]/∂w,x = EA w,x
  ∂DUx[w]/∂u,x = EA w,x    ∂DUx[w]/∂w,x = EA w,x² + N
"""

from __future__ import annotations

import warnings

import numpy as np

from fe_weakform.core.layout import make_pairs, ut_index, ux_index
from fe_weakform.core.model import ElementModelBase, _result_dtype
from fe_weakform.core.results import (
    PointQuantity,
    QuantitySens,
    StrainSVSens,
    WeakForm,
    WeakJacobian,
)
from fe_weakform.core.types import ElementType, OutputFlag, QuantityType

_U_TT = ut_index(0, 2, 1)
_W_TT = ut_index(1, 2, 1)
_U_X = ux_index(0, 0, 1)
_W_X = ux_index(1, 0, 1)


class VonKarmanBar1D(ElementModelBase):
    """1D 非線形バー（ElementModelProtocol / StrainModelProtocol 適合）.

    Args:
        rho: 密度
        E: ヤング率
        A: 断面積（設計変数）
        a_num: 設計変数のグローバル番号。負の場合は設計変数を持たない。
        a_lb: 断面積の下限
        a_ub: 断面積の上限
    """

    spatial_dim = 1
    vars_per_node = 2
    element_type = ElementType.BAR_1D

    JAC_PAIRS = make_pairs(
        [
            (_U_TT, _U_TT),
            (_W_TT, _W_TT),
            (_U_X, _U_X),
            (_U_X, _W_X),
            (_W_X, _U_X),
            (_W_X, _W_X),
        ]
    )

    def __init__(
        self,
        rho: float,
        E: float,
        A: float,
        a_num: int = -1,
        a_lb: float = 0.0,
        a_ub: float = 1e20,
    ) -> None:
        if rho < 0.0:
            raise ValueError(f"密度は非負: rho={rho}")
        if E <= 0.0:
            raise ValueError(f"ヤング率は正: E={E}")
        if A <= 0.0:
            raise ValueError(f"断面積は正: A={A}")
        if a_lb > a_ub:
            raise ValueError(f"設計変数の下限が上限を超えています: lb={a_lb}, ub={a_ub}")
        self.rho = rho
        self.E = E
        self.A = A
        self.a_num = a_num
        self.a_lb = a_lb
        self.a_ub = a_ub

    # ------------------------------------------------------------------
    # 設計変数（断面積）
    # ------------------------------------------------------------------

    def _owns(self, buf) -> bool:
        return self.a_num >= 0 and buf is not None and len(buf) >= 1

    def get_design_var_nums(
        self, elem_index: int, dv_nums: np.ndarray | None = None
    ) -> int:
        if self.a_num >= 0:
            if dv_nums is not None and len(dv_nums) >= 1:
                dv_nums[0] = self.a_num
            return 1
        return 0

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        if self._owns(dvs):
            A = dvs[0]
            if np.real(A) <= 0.0 or not (self.a_lb <= np.real(A) <= self.a_ub):
                warnings.warn(
                    f"断面積 A={A} が範囲 [{self.a_lb}, {self.a_ub}] の外か非正です。",
                    stacklevel=2,
                )
            self.A = A

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        if self._owns(dvs):
            dvs[0] = self.A

    def get_design_var_range(
        self, elem_index: int, lb: np.ndarray | None, ub: np.ndarray | None
    ) -> None:
        if self.a_num >= 0:
            if lb is not None and len(lb) >= 1:
                lb[0] = self.a_lb
            if ub is not None and len(ub) >= 1:
                ub[0] = self.a_ub

    # ------------------------------------------------------------------
    # 弱形式
    # ------------------------------------------------------------------

    @staticmethod
    def _axial_strain(Ux) -> object:
        return Ux[0, 0] + 0.5 * Ux[1, 0] ** 2

    def eval_weak_integrand(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakForm:
        mass = self.rho * self.A
        ex = self._axial_strain(Ux)
        N = self.E * self.A * ex

        DUt, DUx = self._zero_weak_form(Ut, Ux, self.A)
        DUt[:, 2] = mass * Ut[:, 2]
        DUx[0, 0] = N
        DUx[1, 0] = N * Ux[1, 0]
        return WeakForm(DUt=DUt, DUx=DUx)

    def eval_weak_jacobian(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakJacobian:
        DUt, DUx = self.eval_weak_integrand(elem_index, time, n, pt, X, Ut, Ux)
        EA = self.E * self.A
        wx = Ux[1, 0]
        N = DUx[0, 0]

        Jac = self._zero_jacobian(Ut, Ux, self.A)
        Jac[_U_TT, _U_TT] = self.rho * self.A
        Jac[_W_TT, _W_TT] = self.rho * self.A
        Jac[_U_X, _U_X] = EA
        Jac[_U_X, _W_X] = EA * wx
        Jac[_W_X, _U_X] = EA * wx
        Jac[_W_X, _W_X] = EA * wx * wx + N
        return WeakJacobian(DUt=DUt, DUx=DUx, Jac=Jac, pairs=self.JAC_PAIRS)

    def add_weak_adj_product(
        self, elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, scale, dfdx
    ) -> None:
        """dfdx += scale * [ ρ Psi·Ü + E ε (Psix_u + w,x Psix_w) ]."""
        if not self._owns(dfdx):
            return
        ex = self._axial_strain(Ux)
        dfdx[0] += scale * (
            self.rho * (Psi @ Ut[:, 2])
            + self.E * ex * (Psix[0, 0] + Psix[1, 0] * Ux[1, 0])
        )

    # ------------------------------------------------------------------
    # ひずみ
    # ------------------------------------------------------------------

    def eval_strain(self, elem_index, time, n, pt, X, Ut, Ux) -> np.ndarray:
        return np.atleast_1d(self._axial_strain(Ux))

    def eval_strain_sv_sens(self, elem_index, time, n, pt, X, Ut, Ux, dfde) -> StrainSVSens:
        dtype = _result_dtype(Ut, Ux, dfde)
        dfdUt = np.zeros((2, 3), dtype=dtype)
        dfdUx = np.zeros((2, 1), dtype=dtype)
        dfdUx[0, 0] = dfde[0]
        dfdUx[1, 0] = dfde[0] * Ux[1, 0]
        return StrainSVSens(dfdUt=dfdUt, dfdUx=dfdUx)

    # ------------------------------------------------------------------
    # 点量
    # ------------------------------------------------------------------

    def eval_point_quantity(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
    ) -> PointQuantity:
        if quantity_type == QuantityType.ELEMENT_DENSITY:
            return PointQuantity(1, np.atleast_1d(self.rho * self.A))
        if quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            ex = self._axial_strain(Ux)
            return PointQuantity(1, np.atleast_1d(0.5 * self.E * self.A * ex * ex))
        if quantity_type == QuantityType.DISPLACEMENT:
            return PointQuantity(2, Ut[:, 0].copy())
        return super().eval_point_quantity(
            elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
        )

    def add_point_quantity_dv_sens(
        self, elem_index, quantity_type, time, scale, n, pt, X, Xd, Ut, Ux, dfdq, dfdx
    ) -> None:
        if not self._owns(dfdx):
            return
        if quantity_type == QuantityType.ELEMENT_DENSITY:
            dfdx[0] += scale * dfdq[0] * self.rho
        elif quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            ex = self._axial_strain(Ux)
            dfdx[0] += scale * dfdq[0] * 0.5 * self.E * ex * ex

    def eval_point_quantity_sens(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux, dfdq
    ) -> QuantitySens:
        sens = self._zero_quantity_sens(X, Xd, Ut, Ux, dfdq)
        if quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            N = self.E * self.A * self._axial_strain(Ux)
            sens.dfdUx[0, 0] = dfdq[0] * N
            sens.dfdUx[1, 0] = dfdq[0] * N * Ux[1, 0]
        elif quantity_type == QuantityType.DISPLACEMENT:
            sens.dfdUt[:, 0] = dfdq[:2]
        return sens

    def get_output_data(
        self, elem_index, time, etype, write_flag, pt, X, Ut, Ux
    ) -> np.ndarray:
        ex = self._axial_strain(Ux)
        sections = {
            OutputFlag.NODES: X[:1],
            OutputFlag.DISPLACEMENTS: Ut[:, 0],
            OutputFlag.STRAINS: np.atleast_1d(ex),
            OutputFlag.STRESSES: np.atleast_1d(self.E * self.A * ex),
            OutputFlag.EXTRAS: np.atleast_1d(np.real(self.A)),
        }
        return self._pack_output(etype, write_flag, sections)
