"""構成則の応力・破損・設計感度の検証."""

from __future__ import annotations

import numpy as np

from fe_weakform.core.constitutive import ConstitutiveProtocol
from fe_weakform.materials.properties import voigt_product
from fe_weakform.verification.core import (
    VerificationConfig,
    VerificationResult,
    compare_values,
    directional_derivative,
    gradient,
    merge_results,
    perturbation_rng,
    skipped_result,
)


class ConstitutiveTester:
    """1 つの構成則・1 つの点に対する検証.

    Args:
        con: 検証対象の構成則
        elem_index: 要素番号
        pt: パラメトリック座標（None なら乱数）
        X: 物理座標 (3,)（None なら乱数）
        strain: 評価ひずみ (num_stresses,)（None なら乱数）
        config: 差分ステップ・許容誤差・出力レベル
    """

    def __init__(
        self,
        con: ConstitutiveProtocol,
        elem_index: int = 0,
        pt: np.ndarray | None = None,
        X: np.ndarray | None = None,
        strain: np.ndarray | None = None,
        config: VerificationConfig | None = None,
    ) -> None:
        self.con = con
        self.config = config if config is not None else VerificationConfig()
        self.elem_index = elem_index
        rng = np.random.default_rng(self.config.seed)
        ns = con.get_num_stresses()
        self.pt = rng.uniform(-1.0, 1.0, 3) if pt is None else np.asarray(pt, dtype=float)
        self.X = rng.uniform(-1.0, 1.0, 3) if X is None else np.asarray(X, dtype=float)
        self.e = rng.uniform(-1.0, 1.0, ns) if strain is None else np.asarray(strain, dtype=float)

    def _header(self, title: str) -> None:
        if self.config.print_level >= 1:
            print(f"[{type(self.con).__name__}] {title}")

    def test_stress_consistency(self) -> VerificationResult:
        """eval_stress(e) と eval_tangent_stiffness()·e の厳密一致."""
        self._header("test_stress_consistency")
        args = (self.elem_index, self.pt, self.X)
        s = self.con.eval_stress(*args, self.e)
        s_ref = voigt_product(self.con.eval_tangent_stiffness(*args), self.e)
        err = float(np.abs(s - s_ref).max())
        ok = np.array_equal(s, s_ref)
        if self.config.print_level >= 1:
            print(f"  [stress_consistency] {'PASS' if ok else 'FAIL'}  max_abs_err={err:.3e}")
        return VerificationResult(ok, err, 0.0, "stress_consistency")

    def test_failure_strain_sens(self) -> VerificationResult:
        """eval_failure_strain_sens をひずみに関する差分勾配と比較する."""
        self._header("test_failure_strain_sens")
        cfg = self.config
        args = (self.elem_index, self.pt, self.X)
        fail, dfde = self.con.eval_failure_strain_sens(*args, self.e)
        fd = gradient(lambda e: self.con.eval_failure(*args, e), self.e, cfg)
        return merge_results(
            "failure_strain_sens",
            [
                compare_values(fail, self.con.eval_failure(*args, self.e), cfg, "failure_value"),
                compare_values(dfde, fd, cfg, "failure_strain_sens"),
            ],
        )

    def test_stress_dv_sens(self, x: np.ndarray | None = None) -> VerificationResult:
        """add_stress_dv_sens を scale·psi·σ の設計方向差分と比較する.

        試験後、設計変数は元の値に戻す。
        """
        self._header("test_stress_dv_sens")
        con = self.con
        ndv = con.get_design_var_nums(self.elem_index)
        if ndv == 0:
            return skipped_result("stress_dv_sens", "設計変数なし", self.config.print_level)
        rng = perturbation_rng(self.config.seed, "stress_dv_sens")
        x = rng.uniform(-1.0, 1.0, ndv) if x is None else np.asarray(x, dtype=float)
        psi = rng.uniform(-1.0, 1.0, len(self.e))
        scale = rng.uniform(0.5, 2.0)
        args = (self.elem_index, self.pt, self.X)

        dvs0 = np.zeros(ndv)
        con.get_design_vars(self.elem_index, dvs0)
        dfdx = np.zeros(ndv)
        con.add_stress_dv_sens(self.elem_index, scale, self.pt, self.X, self.e, psi, dfdx)

        def fun(dvs):
            con.set_design_vars(self.elem_index, dvs)
            return scale * (psi @ con.eval_stress(*args, self.e))

        try:
            fd = directional_derivative(fun, dvs0, x, self.config)
        finally:
            con.set_design_vars(self.elem_index, dvs0)
        return compare_values(dfdx @ x, fd, self.config, "stress_dv_sens")

    def run_all(self) -> list[VerificationResult]:
        return [
            self.test_stress_consistency(),
            self.test_failure_strain_sens(),
            self.test_stress_dv_sens(),
        ]
