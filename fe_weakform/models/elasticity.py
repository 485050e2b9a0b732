"""3D 線形弾性の物理モデル.

変数: U = (u, v, w)、空間次元 3。

弱形式:
  ∫ ( ρ ü·δu + σ(ε):δε ) dΩ = 0
  DUt[i, 2] = ρ ü_i
  DUx       = Bᵀ σ,   σ = con.eval_stress(ε),  ε = B Ux

Voigt 表記: ε = [εxx, εyy, εzz, γyz, γxz, γxy]（工学せん断ひずみ）

Jacobian:
  ∂DUt[i,2]/∂ü_i = ρ
  ∂DUx/∂Ux      = Bᵀ C B  （C は 21 成分の接線剛性、一般異方性で密）
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
from fe_weakform.materials.properties import voigt_matrix

# ε = B_STRAIN @ Ux.ravel()   （Ux[i, j] = ∂u_i/∂x_j → 平坦化インデックス 3*i + j）
B_STRAIN = np.zeros((6, 9), dtype=float)
B_STRAIN[0, 0] = 1.0  # εxx = u,x
B_STRAIN[1, 4] = 1.0  # εyy = v,y
B_STRAIN[2, 8] = 1.0  # εzz = w,z
B_STRAIN[3, 5] = B_STRAIN[3, 7] = 1.0  # γyz = v,z + w,y
B_STRAIN[4, 2] = B_STRAIN[4, 6] = 1.0  # γxz = u,z + w,x
B_STRAIN[5, 1] = B_STRAIN[5, 3] = 1.0  # γxy = u,y + v,x


def strain_3d(Ux: np.ndarray) -> np.ndarray:
    """変位勾配 (3, 3) から Voigt ひずみ (6,)."""
    return B_STRAIN @ np.asarray(Ux)[:3, :3].ravel()


def strain_3d_transpose(dfde: np.ndarray) -> np.ndarray:
    """strain_3d の転置写像: (6,) → (3, 3)."""
    return (B_STRAIN.T @ dfde).reshape(3, 3)


def displacement_ux_indices(spatial_dim: int = 3) -> list[int]:
    """変位勾配 Ux[0:3, 0:3] の Jacobian インデックス（行優先）."""
    return [ux_index(i, j, spatial_dim) for i in range(3) for j in range(3)]


def _elasticity_pairs() -> np.ndarray:
    idx = displacement_ux_indices()
    entries = [(ut_index(i, 2, 3), ut_index(i, 2, 3)) for i in range(3)]
    entries += [(r, c) for r in idx for c in idx]
    return make_pairs(entries)


class LinearElasticity3D(ConstitutiveModelBase):
    """3D 線形弾性（ElementModelProtocol / StrainModelProtocol 適合）.

    Args:
        con: 3D 固体構成則（SolidConstitutive 等）
    """

    spatial_dim = 3
    vars_per_node = 3
    element_type = ElementType.SOLID
    is_symmetric = True

    JAC_PAIRS = _elasticity_pairs()

    # ------------------------------------------------------------------
    # 弱形式
    # ------------------------------------------------------------------

    def eval_weak_integrand(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakForm:
        rho = self.con.eval_density(elem_index, pt, X)
        e = strain_3d(Ux)
        s = self.con.eval_stress(elem_index, pt, X, e)

        DUt, DUx = self._zero_weak_form(Ut, Ux, rho, s)
        DUt[:, 2] = rho * Ut[:, 2]
        DUx[:, :] = strain_3d_transpose(s)
        return WeakForm(DUt=DUt, DUx=DUx)

    def eval_weak_jacobian(self, elem_index, time, n, pt, X, Ut, Ux) -> WeakJacobian:
        DUt, DUx = self.eval_weak_integrand(elem_index, time, n, pt, X, Ut, Ux)
        rho = self.con.eval_density(elem_index, pt, X)
        C = voigt_matrix(self.con.eval_tangent_stiffness(elem_index, pt, X))
        Jac = self._zero_jacobian(Ut, Ux, rho, C)
        for i in range(3):
            k = ut_index(i, 2, 3)
            Jac[k, k] = rho

        idx = displacement_ux_indices()
        Jac[np.ix_(idx, idx)] = B_STRAIN.T @ C @ B_STRAIN
        return WeakJacobian(DUt=DUt, DUx=DUx, Jac=Jac, pairs=self.JAC_PAIRS)

    def add_weak_adj_product(
        self, elem_index, time, n, pt, X, Ut, Ux, Psi, Psix, scale, dfdx
    ) -> None:
        """dfdx += scale * [ (Psi·ü) ∂ρ/∂x + (B Psix)·∂σ/∂x ]."""
        self.con.add_density_dv_sens(elem_index, scale * (Psi @ Ut[:, 2]), pt, X, dfdx)
        e = strain_3d(Ux)
        psi_e = strain_3d(Psix)
        self.con.add_stress_dv_sens(elem_index, scale, pt, X, e, psi_e, dfdx)

    # ------------------------------------------------------------------
    # ひずみ
    # ------------------------------------------------------------------

    def eval_strain(self, elem_index, time, n, pt, X, Ut, Ux) -> np.ndarray:
        return strain_3d(Ux)

    def eval_strain_sv_sens(self, elem_index, time, n, pt, X, Ut, Ux, dfde) -> StrainSVSens:
        dtype = _result_dtype(Ut, Ux, dfde)
        return StrainSVSens(
            dfdUt=np.zeros((3, 3), dtype=dtype),
            dfdUx=strain_3d_transpose(dfde).astype(dtype),
        )

    # ------------------------------------------------------------------
    # 点量
    # ------------------------------------------------------------------

    def eval_point_quantity(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
    ) -> PointQuantity:
        e = strain_3d(Ux)
        if quantity_type == QuantityType.FAILURE_INDEX:
            q = self.con.eval_failure(elem_index, pt, X, e)
            return PointQuantity(1, np.atleast_1d(q))
        if quantity_type == QuantityType.ELEMENT_DENSITY:
            rho = self.con.eval_density(elem_index, pt, X)
            return PointQuantity(1, np.atleast_1d(rho))
        if quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            s = self.con.eval_stress(elem_index, pt, X, e)
            return PointQuantity(1, np.atleast_1d(0.5 * (e @ s)))
        if quantity_type == QuantityType.DISPLACEMENT:
            return PointQuantity(3, Ut[:, 0].copy())
        return super().eval_point_quantity(
            elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux
        )

    def add_point_quantity_dv_sens(
        self, elem_index, quantity_type, time, scale, n, pt, X, Xd, Ut, Ux, dfdq, dfdx
    ) -> None:
        e = strain_3d(Ux)
        if quantity_type == QuantityType.FAILURE_INDEX:
            self.con.add_failure_dv_sens(elem_index, scale * dfdq[0], pt, X, e, dfdx)
        elif quantity_type == QuantityType.ELEMENT_DENSITY:
            self.con.add_density_dv_sens(elem_index, scale * dfdq[0], pt, X, dfdx)
        elif quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            # ∂(ε·σ/2)/∂x = ε·(∂σ/∂x)/2
            self.con.add_stress_dv_sens(elem_index, 0.5 * scale * dfdq[0], pt, X, e, e, dfdx)

    def eval_point_quantity_sens(
        self, elem_index, quantity_type, time, n, pt, X, Xd, Ut, Ux, dfdq
    ) -> QuantitySens:
        sens = self._zero_quantity_sens(X, Xd, Ut, Ux, dfdq)
        e = strain_3d(Ux)
        if quantity_type == QuantityType.FAILURE_INDEX:
            _, dfde = self.con.eval_failure_strain_sens(elem_index, pt, X, e)
            sens.dfdUx[:, :] = dfdq[0] * strain_3d_transpose(dfde)
        elif quantity_type == QuantityType.STRAIN_ENERGY_DENSITY:
            s = self.con.eval_stress(elem_index, pt, X, e)
            sens.dfdUx[:, :] = dfdq[0] * strain_3d_transpose(s)
        elif quantity_type == QuantityType.DISPLACEMENT:
            sens.dfdUt[:, 0] = dfdq[:3]
        return sens

    # ------------------------------------------------------------------
    # 可視化出力
    # ------------------------------------------------------------------

    def get_output_data(
        self, elem_index, time, etype, write_flag, pt, X, Ut, Ux
    ) -> np.ndarray:
        e = strain_3d(Ux)
        s = self.con.eval_stress(elem_index, pt, X, e)
        fail = self.con.eval_failure(elem_index, pt, X, e)
        sections = {
            OutputFlag.NODES: X[:3],
            OutputFlag.DISPLACEMENTS: Ut[:, 0],
            OutputFlag.STRAINS: e,
            OutputFlag.STRESSES: s,
            OutputFlag.EXTRAS: np.array([fail, self._design_value(elem_index)]),
        }
        return self._pack_output(etype, write_flag, sections)
