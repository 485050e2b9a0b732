"""3D 固体の線形構成則（ConstitutiveProtocol 適合）.

厚さ（体積比率）t を唯一の設計変数として持つ。t は全ての剛性・密度・比熱・
熱伝導率に一様に乗じる:

  σ = (t C)·ε,   ρ_eff = t ρ,   c_eff = t c_p,   q = (t κ)·∇T

破損指標は材料応力 C·ε（t を乗じない）の von Mises 値で評価する。
したがって破損指標は t に依存せず、その設計感度はゼロ。

物性ソース (MaterialProperties) が無い場合は全ての評価がゼロを返す。
"""

from __future__ import annotations

import warnings

import numpy as np

from fe_weakform.materials.properties import (
    NUM_STIFFNESS,
    MaterialProperties,
    sym3_matrix,
    voigt_product,
)


def _zeros(n: int, *arrays) -> np.ndarray:
    return np.zeros(n, dtype=np.result_type(np.float64, *arrays))


class SolidConstitutive:
    """3D 固体線形弾性・熱伝導構成則.

    Args:
        props: 材料物性ソース。None の場合は縮退モード（全てゼロ）。
        t: 厚さ（設計変数）
        t_num: 設計変数のグローバル番号。負の場合は設計変数を持たない。
        t_lb: 設計変数の下限
        t_ub: 設計変数の上限
    """

    NUM_STRESSES = 6

    def __init__(
        self,
        props: MaterialProperties | None = None,
        t: float = 1.0,
        t_num: int = -1,
        t_lb: float = 0.0,
        t_ub: float = 1e20,
    ) -> None:
        if t_lb > t_ub:
            raise ValueError(f"設計変数の下限が上限を超えています: lb={t_lb}, ub={t_ub}")
        self.props = props
        self.t = t
        self.t_num = t_num
        self.t_lb = t_lb
        self.t_ub = t_ub

    def constitutive_name(self) -> str:
        return "SolidConstitutive"

    def get_num_stresses(self) -> int:
        return self.NUM_STRESSES

    # ------------------------------------------------------------------
    # 設計変数
    # ------------------------------------------------------------------

    def _owns(self, buf) -> bool:
        return self.t_num >= 0 and buf is not None and len(buf) >= 1

    def get_design_var_nums(
        self, elem_index: int, dv_nums: np.ndarray | None = None
    ) -> int:
        """設計変数番号を書き込み、数を返す（dv_nums 無し/長さ不足は問い合わせのみ）."""
        if self.t_num >= 0:
            if dv_nums is not None and len(dv_nums) >= 1:
                dv_nums[0] = self.t_num
            return 1
        return 0

    def set_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        if self._owns(dvs):
            t = dvs[0]
            if not (self.t_lb <= np.real(t) <= self.t_ub):
                warnings.warn(
                    f"厚さ t={t} が範囲 [{self.t_lb}, {self.t_ub}] の外です。",
                    stacklevel=2,
                )
            self.t = t

    def get_design_vars(self, elem_index: int, dvs: np.ndarray) -> None:
        if self._owns(dvs):
            dvs[0] = self.t

    def get_design_var_range(
        self, elem_index: int, lb: np.ndarray | None, ub: np.ndarray | None
    ) -> None:
        if self.t_num >= 0:
            if lb is not None and len(lb) >= 1:
                lb[0] = self.t_lb
            if ub is not None and len(ub) >= 1:
                ub[0] = self.t_ub

    # ------------------------------------------------------------------
    # 点物性
    # ------------------------------------------------------------------

    def eval_density(self, elem_index: int, pt: np.ndarray, X: np.ndarray):
        if self.props is not None:
            return self.t * self.props.get_density()
        return 0.0

    def add_density_dv_sens(
        self, elem_index: int, scale, pt: np.ndarray, X: np.ndarray, dfdx: np.ndarray
    ) -> None:
        if self.props is not None and self._owns(dfdx):
            dfdx[0] += scale * self.props.get_density()

    def eval_specific_heat(self, elem_index: int, pt: np.ndarray, X: np.ndarray):
        if self.props is not None:
            return self.t * self.props.get_specific_heat()
        return 0.0

    def add_specific_heat_dv_sens(
        self, elem_index: int, scale, pt: np.ndarray, X: np.ndarray, dfdx: np.ndarray
    ) -> None:
        if self.props is not None and self._owns(dfdx):
            dfdx[0] += scale * self.props.get_specific_heat()

    def get_pointwise_mass(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        """質量モーメント（固体では密度の 1 成分）."""
        return np.array([self.eval_density(elem_index, pt, X)])

    # ------------------------------------------------------------------
    # 応力
    # ------------------------------------------------------------------

    def eval_tangent_stiffness(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        """t を一様に乗じた接線剛性 (21,)."""
        if self.props is not None:
            return self.t * self.props.eval_tangent_stiffness_3d()
        return _zeros(NUM_STIFFNESS, self.t)

    def eval_stress(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> np.ndarray:
        """σ = (t C)·ε.

        eval_tangent_stiffness と同じテンソルを使うので
        voigt_product(eval_tangent_stiffness(), e) と厳密に一致する。
        """
        if self.props is not None:
            return voigt_product(self.eval_tangent_stiffness(elem_index, pt, X), e)
        return _zeros(self.NUM_STRESSES, e, self.t)

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
        """dfdx += scale * psi·(C·ε)  (∂σ/∂t = C·ε)."""
        if self.props is not None and self._owns(dfdx):
            C = self.props.eval_tangent_stiffness_3d()
            dfdx[0] += scale * (psi @ voigt_product(C, e))

    def eval_thermal_strain(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, theta
    ) -> np.ndarray:
        """熱ひずみ θ·α (6,)."""
        if self.props is not None:
            return theta * self.props.eval_thermal_strain_3d()
        return _zeros(self.NUM_STRESSES, theta)

    # ------------------------------------------------------------------
    # 熱伝導
    # ------------------------------------------------------------------

    def eval_tangent_heat_flux(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray
    ) -> np.ndarray:
        """t を乗じた熱伝導率 [k11, k12, k13, k22, k23, k33]."""
        if self.props is not None:
            return self.t * self.props.eval_tangent_heat_flux_3d()
        return _zeros(6, self.t)

    def eval_heat_flux(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, grad: np.ndarray
    ) -> np.ndarray:
        """熱流束 q = (t κ)·∇T (3,)."""
        if self.props is not None:
            return sym3_matrix(self.eval_tangent_heat_flux(elem_index, pt, X)) @ grad
        return _zeros(3, grad, self.t)

    def add_heat_flux_dv_sens(
        self,
        elem_index: int,
        scale,
        pt: np.ndarray,
        X: np.ndarray,
        grad: np.ndarray,
        psi: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """dfdx += scale * psi·(κ·∇T)."""
        if self.props is not None and self._owns(dfdx):
            K = sym3_matrix(self.props.eval_tangent_heat_flux_3d())
            dfdx[0] += scale * (psi @ (K @ grad))

    # ------------------------------------------------------------------
    # 破損
    # ------------------------------------------------------------------

    def eval_failure(self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray):
        """材料応力 C·ε の von Mises 破損指標."""
        if self.props is not None:
            s = voigt_product(self.props.eval_tangent_stiffness_3d(), e)
            return self.props.von_mises_failure_3d(s)
        return 0.0

    def eval_failure_strain_sens(
        self, elem_index: int, pt: np.ndarray, X: np.ndarray, e: np.ndarray
    ) -> tuple:
        """破損指標と ∂fail/∂ε = C·(∂fail/∂σ)（C は対称）.

        Returns:
            (fail, dfde): dfde (6,)
        """
        if self.props is not None:
            C = self.props.eval_tangent_stiffness_3d()
            s = voigt_product(C, e)
            fail, dfds = self.props.von_mises_failure_3d_stress_sens(s)
            return fail, voigt_product(C, dfds)
        return 0.0, _zeros(self.NUM_STRESSES, e)

    def add_failure_dv_sens(
        self,
        elem_index: int,
        scale,
        pt: np.ndarray,
        X: np.ndarray,
        e: np.ndarray,
        dfdx: np.ndarray,
    ) -> None:
        """破損指標は t に依存しないので加算なし."""
        return None
