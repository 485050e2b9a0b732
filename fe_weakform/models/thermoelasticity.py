"""3D 線形熱弾性の物理モデル（温度 → 変形の一方向連成）.

変数: U = (u, v, w, θ)、空間次元 3。θ は基準温度からの温度上昇。

弱形式:
  ∫ ( ρ ü·δu + σ:δε + ρ c θ̇ δθ + q·∇δθ ) dΩ = 0
  ε_m = B Ux[0:3] − α θ            （機械ひずみ）
  σ   = con.eval_stress(ε_m)
  q   = κ ∇θ

Jacobian は非対称: ∂DUx[u]/∂θ = −Bᵀ C α は非ゼロだが、
熱方程式は変位に依存しない。
"""

from __future__ import annotations

import numpy as np

from fe_weakform.core.layout import make_pairs, ut_index, ux_index
from fe_weakform.core.model import ConstitutiveModelBase, _result_dtype
from fe_weakform.core.results import (
    PointQuantity,
    QuantitySens,
    StrainSVSens,
    WeakForm,
    WeakJacobian,
)
from fe_weakform.core.types import ElementType, OutputFlag, QuantityType
from fe_weakform.materials.properties import sym3_matrix, voigt_matrix
from fe_weakform.models.elasticity import (
    B_STRAIN,
    displacement_ux_indices,
    strain_3d,
    strain_3d_transpose,
)

_DIM = 3
_THETA = ut_index(3, 0, _DIM)
_THETA_DOT = ut_index(3, 1, _DIM)
_U_IDX = displacement_ux_indices(_DIM)
_GRAD_IDX = [ux_index(3, j, _DIM) for j in range(_DIM)]
_ACCEL_IDX = [ut_index(i, 2, _DIM) for i in range(3)]


def _thermoelastic_pairs() -> np.ndarray:
    entries = [(k, k) for k in _ACCEL_IDX]
    entries.append((_THETA_DOT, _THETA_DOT))
    entries += [(r, c) for r in _U_IDX for c in _U_IDX]
    entries += [(r, _THETA) for r in _U_IDX]
    entries += [(r, c) for r in _GRAD_IDX for c in _GRAD_IDX]
    return make_pairs(entries)


class LinearThermoelasticity3D(ConstitutiveModelBase):
    """3D 線形熱弾性（ElementModelProtocol / StrainModelProtocol 適合）.

    Args:
        con: 3D 固体構成則。熱ひずみ係数と熱伝導率を持つこと。
    """

    spatial_dim = 3
    vars_per_node = 4
    element_type = ElementType.THERMOELASTIC_3D

    JAC_PAIRS = _thermoelastic_pairs()

    def _mechanical_strain(self, elem_index, pt, X, Ut, Ux) -> np.ndarray:
        e = strain_3d(Ux)
        return e - self.con.eval_thermal_strain(elem_index, pt, X, Ut[3, 0])

    def eval_weak_integrand(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakForm:
        rho = self.con.eval_density(elem_index, pt, X)
        c = self.con.eval_specific_heat(elem_index, pt, X)
        em = self._mechanical_strain(elem_index, pt, X, Ut, Ux)
        s = self.con.eval_stress(elem_index, pt, X, em)
        q = self.con.eval_heat_flux(elem_index, pt, X, Ux[3])

        DUt, DUx = self._zero_weak_form(Ut, Ux, rho, c, s, q)
        DUt[:3, 2] = rho * Ut[:3, 2]
        DUt[3, 1] = rho * c * Ut[3, 1]
        DUx[:3, :] = strain_3d_transpose(s)
        DUx[3, :] = q
        return WeakForm(DUt=DUt, DUx=DUx)

    def eval_weak_jacobian(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakJacobian:
        DUt, DUx = self.eval_weak_integrand(elem_index, time, n, pt, X, Ut, Ux)
        rho = self.con.eval_density(elem_index, pt, X)
        c = self.con.eval_specific_heat(elem_index, pt, X)
        C = voigt_matrix(self.con.eval_tangent_stiffness(elem_index, pt, X))
        K = sym3_matrix(self.con.eval_tangent_heat_flux(elem_index, pt, X))
        alpha = self.con.eval_thermal_strain(elem_index, pt, X, 1.0)

        Jac = self._zero_jacobian(Ut, Ux, rho, c, C, K)
        for k in _ACCEL_IDX:
            Jac[k, k] = rho
        Jac[_THETA_DOT, _THETA_DOT] = rho * c
        Jac[np.ix_(_U_IDX, _U_IDX)] = B_STRAIN.T @ C @ B_STRAIN
        Jac[_U_IDX, _THETA] = -(B_STRAIN.T @ (C @ alpha))
        Jac[np.ix_(_GRAD_IDX, _GRAD_IDX)] = K
        return WeakJacobian(DUt=DUt, DUx=DUx, Jac=Jac, pairs=self.JAC_PAIRS)

    def add_weak_adj_product(
        self, elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, scale, dfdx
    ) -> None:
        rho = self.con.eval_density(elem_index, pt, X)
        c = self.con.eval_specific_heat(elem_index, pt, X)
        # 慣性項と熱容量項
        a = scale * Psi[3] * Ut[3, 1]
        self.con.add_density_dv_sens(
            elem_index, scale * (Psi[:3] @ Ut[:3, 2]) + a * c, pt, X, dfdx
        )
        self.con.add_specific_heat_dv_sens(elem_index, a * rho, pt, X, dfdx)
        # 応力項（熱ひずみ係数は t に依存しない）
        em = self._mechanical_strain(elem_index, pt, X, Ut, Ux)
        psi_e = strain_3d(Psix)
        self.con.add_stress_dv_sens(elem_index, scale, pt, X, em, psi_e, dfdx)
        # 熱流束項
        self.con.add_heat_flux_dv_sens(elem_index, scale, pt, X, Ux[3], Psix[3], dfdx)

    # ------------------------------------------------------------------
    # ひずみ（機械ひずみ）
    # ------------------------------------------------------------------

    def eval_strain(self, elem_index, time, n, pt, X, Ut, Ux) -> np.ndarray:
        return self._mechanical_strain(elem_index, pt, X, Ut, Ux)

    def _strain_transpose(self, elem_index, pt, X, dfde, dtype) -> tuple:
        """ε_m の転置写像: dfde → (dfdUt, dfdUx)."""
        alpha = self.con.eval_thermal_strain(elem_index, pt, X, 1.0)
        dfdUt = np.zeros((4, 3), dtype=dtype)
        dfdUx = np.zeros((4, 3), dtype=dtype)
        dfdUx[:3, :] = strain_3d_transpose(dfde)
        dfdUt[3, 0] = -(dfde @ alpha)
        return dfdUt, dfdUx

    def eval_strain_sv_sens(self, elem_index, time, n, pt, X, Ut, Ux, dfde) -> StrainSVSens:
        dtype = _result_dtype(Ut, Ux, dfde)
        dfdUt, dfdUx = self._strain_transpose(elem_index, pt, X, dfde, dtype)
        return StrainSVSens(dfdUt=dfdUt, dfdUx=dfdUx)

    # ------------------------------------------------------------------
    # 点量
    # ------------------------------------------------------------------

    def eval_point_quantity(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
    ) -> PointQuantity:
        em = self._mechanical_strain(elem_index, pt, X, Ut, Ux)
        if quantity_type == QuantityType.FAILURE_INDEX:
            q = self.con.eval_failure(elem_index, pt, X, em)
            return PointQuantity(1, np.atleast_1d(q))
        if quantity_type == QuantityType.ELEMENT_DENSITY:
            rho = self.con.eval_density(elem_index, pt, X)
            return PointQuantity(1, np.atleast_1d(rho))
        if quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            s = self.con.eval_stress(elem_index, pt, X, em)
            return PointQuantity(1, np.atleast_1d(0.5 * (em @ s)))
        if quantity_type == QuantityType.DISPLACEMENT:
            return PointQuantity(3, Ut[:3, 0].copy())
        if quantity_type == QuantityType.TEMPERATURE:
            return PointQuantity(1, Ut[3, :1].copy())
        if quantity_type == QuantityType.HEAT_FLUX:
            return PointQuantity(3, self.con.eval_heat_flux(elem_index, pt, X, Ux[3]))
        return super().eval_point_quantity(
            elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
        )

    def add_point_quantity_dv_sens(
        self, elem_index, quantity_type, time, scale, n, pt, X, Xd, Ut, Ux, dfdq, dfdx
    ) -> None:
        em = self._mechanical_strain(elem_index, pt, X, Ut, Ux)
        if quantity_type == QuantityType.FAILURE_INDEX:
            self.con.add_failure_dv_sens(elem_index, scale * dfdq[0], pt, X, em, dfdx)
        elif quantity_type == QuantityType.ELEMENT_DENSITY:
            self.con.add_density_dv_sens(elem_index, scale * dfdq[0], pt, X, dfdx)
        elif quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            self.con.add_stress_dv_sens(elem_index, 0.5 * scale * dfdq[0], pt, X, em, em, dfdx)
        elif quantity_type == QuantityType.HEAT_FLUX:
            self.con.add_heat_flux_dv_sens(elem_index, scale, pt, X, Ux[3], dfdq[:3], dfdx)

    def eval_point_quantity_sens(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux, dfdq
    ) -> QuantitySens:
        sens = self._zero_quantity_sens(X, Xd, Ut, Ux, dfdq)
        em = self._mechanical_strain(elem_index, pt, X, Ut, Ux)
        dfde = None
        if quantity_type == QuantityType.FAILURE_INDEX:
            _, dfde = self.con.eval_failure_strain_sens(elem_index, pt, X, em)
        elif quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            dfde = self.con.eval_stress(elem_index, pt, X, em)
        elif quantity_type == QuantityType.DISPLACEMENT:
            sens.dfdUt[:3, 0] = dfdq[:3]
        elif quantity_type == QuantityType.TEMPERATURE:
            sens.dfdUt[3, 0] = dfdq[0]
        elif quantity_type == QuantityType.HEAT_FLUX:
            K = sym3_matrix(self.con.eval_tangent_heat_flux(elem_index, pt, X))
            sens.dfdUx[3, :] = K @ dfdq[:3]

        if dfde is not None:
            dfdUt, dfdUx = self._strain_transpose(
                elem_index, pt, X, dfdq[0] * dfde, sens.dfdUt.dtype
            )
            sens.dfdUt[:, :] += dfdUt
            sens.dfdUx[:, :] += dfdUx
        return sens

    def get_output_data(
        self, elem_index, time, etype, write_flag, pt, X, Ut, Ux
    ) -> np.ndarray:
        em = self._mechanical_strain(elem_index, pt, X, Ut, Ux)
        s = self.con.eval_stress(elem_index, pt, X, em)
        fail = self.con.eval_failure(elem_index, pt, X, em)
        sections = {
            OutputFlag.NODES: X[:3],
            OutputFlag.DISPLACEMENTS: Ut[:, 0],
            OutputFlag.STRAINS: em,
            OutputFlag.STRESSES: s,
            OutputFlag.EXTRAS: np.array([fail, self._design_value(elem_index)]),
        }
        return self._pack_output(etype, write_flag, sections)
