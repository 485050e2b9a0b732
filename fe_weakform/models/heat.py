"""3D 熱伝導の物理モデル.

変数: U = (T,)、空間次元 3。

弱形式:
  ∫ ( ρ c Ṫ δT + q(∇T)·∇δT ) dΩ = 0
  DUt[0, 1] = ρ c Ṫ
  DUx[0, :] = q = κ ∇T

ρ, c, κ はいずれも構成則の設計変数 t に比例するので、熱容量 ρc は t² に比例する。
随伴積の設計微分は積の微分則で ∂(ρc)/∂t = (∂ρ/∂t) c + ρ (∂c/∂t)。
"""

from __future__ import annotations

import numpy as np

from fe_weakform.core.layout import make_pairs, ut_index, ux_index
from fe_weakform.core.model import ConstitutiveModelBase
from fe_weakform.core.results import PointQuantity, QuantitySens, WeakForm, WeakJacobian
from fe_weakform.core.types import ElementType, OutputFlag, QuantityType
from fe_weakform.materials.properties import sym3_matrix

_T_DOT = ut_index(0, 1, 3)
_GRAD_IDX = [ux_index(0, j, 3) for j in range(3)]


class HeatConduction3D(ConstitutiveModelBase):
    """3D 熱伝導（ElementModelProtocol 適合）.

    Args:
        con: 熱伝導率・比熱・密度を与える構成則（SolidConstitutive 等）
    """

    spatial_dim = 3
    vars_per_node = 1
    element_type = ElementType.SCALAR_3D
    is_symmetric = True

    JAC_PAIRS = make_pairs(
        [(_T_DOT, _T_DOT)] + [(r, c) for r in _GRAD_IDX for c in _GRAD_IDX]
    )

    def eval_weak_integrand(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakForm:
        rho = self.con.eval_density(elem_index, pt, X)
        c = self.con.eval_specific_heat(elem_index, pt, X)
        q = self.con.eval_heat_flux(elem_index, pt, X, Ux[0])

        DUt, DUx = self._zero_weak_form(Ut, Ux, rho, c, q)
        DUt[0, 1] = rho * c * Ut[0, 1]
        DUx[0, :] = q
        return WeakForm(DUt=DUt, DUx=DUx)

    def eval_weak_jacobian(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakJacobian:
        DUt, DUx = self.eval_weak_integrand(elem_index, time, n, pt, X, Ut, Ux)
        rho = self.con.eval_density(elem_index, pt, X)
        c = self.con.eval_specific_heat(elem_index, pt, X)
        K = sym3_matrix(self.con.eval_tangent_heat_flux(elem_index, pt, X))

        Jac = self._zero_jacobian(Ut, Ux, rho, c, K)
        Jac[_T_DOT, _T_DOT] = rho * c
        Jac[np.ix_(_GRAD_IDX, _GRAD_IDX)] = K
        return WeakJacobian(DUt=DUt, DUx=DUx, Jac=Jac, pairs=self.JAC_PAIRS)

    def add_weak_adj_product(
        self, elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, scale, dfdx
    ) -> None:
        rho = self.con.eval_density(elem_index, pt, X)
        c = self.con.eval_specific_heat(elem_index, pt, X)
        a = scale * Psi[0] * Ut[0, 1]
        self.con.add_density_dv_sens(elem_index, a * c, pt, X, dfdx)
        self.con.add_specific_heat_dv_sens(elem_index, a * rho, pt, X, dfdx)
        self.con.add_heat_flux_dv_sens(elem_index, scale, pt, X, Ux[0], Psix[0], dfdx)

    # ------------------------------------------------------------------
    # 点量
    # ------------------------------------------------------------------

    def eval_point_quantity(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
    ) -> PointQuantity:
        if quantity_type == QuantityType.TEMPERATURE:
            return PointQuantity(1, Ut[0, :1].copy())
        if quantity_type == QuantityType.ELEMENT_DENSITY:
            rho = self.con.eval_density(elem_index, pt, X)
            return PointQuantity(1, np.atleast_1d(rho))
        if quantity_type == QuantityType.HEAT_FLUX:
            return PointQuantity(3, self.con.eval_heat_flux(elem_index, pt, X, Ux[0]))
        return super().eval_point_quantity(
            elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
        )

    def add_point_quantity_dv_sens(
        self, elem_index, quantity_type, time, scale, n, pt, X, Xd, Ut, Ux, dfdq, dfdx
    ) -> None:
        if quantity_type == QuantityType.ELEMENT_DENSITY:
            self.con.add_density_dv_sens(elem_index, scale * dfdq[0], pt, X, dfdx)
        elif quantity_type == QuantityType.HEAT_FLUX:
            self.con.add_heat_flux_dv_sens(elem_index, scale, pt, X, Ux[0], dfdq[:3], dfdx)

    def eval_point_quantity_sens(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux, dfdq
    ) -> QuantitySens:
        sens = self._zero_quantity_sens(X, Xd, Ut, Ux, dfdq)
        if quantity_type == QuantityType.TEMPERATURE:
            sens.dfdUt[0, 0] = dfdq[0]
        elif quantity_type == QuantityType.HEAT_FLUX:
            K = sym3_matrix(self.con.eval_tangent_heat_flux(elem_index, pt, X))
            sens.dfdUx[0, :] = K @ dfdq[:3]
        return sens

    def get_output_data(
        self, elem_index, time, etype, write_flag, pt, X, Ut, Ux
    ) -> np.ndarray:
        sections = {
            OutputFlag.NODES: X[:3],
            OutputFlag.DISPLACEMENTS: Ut[0, :1],
            OutputFlag.STRAINS: Ux[0],
            OutputFlag.STRESSES: self.con.eval_heat_flux(elem_index, pt, X, Ux[0]),
            OutputFlag.EXTRAS: np.array([self._design_value(elem_index)]),
        }
        return self._pack_output(etype, write_flag, sections)
