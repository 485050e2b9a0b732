"""物理モデルの解析微分を差分で検証するハーネス.

ElementModelProtocol の公開メソッドだけを呼び出す。特定の物理モデルには依存しない。

使用例:
    tester = ElementModelTester(LinearElasticity3D(con), config=VerificationConfig(print_level=1))
    assert tester.test_jacobian()
    assert tester.test_adj_res_product()
"""

from __future__ import annotations

import numpy as np

from fe_weakform.core.layout import (
    NUM_TIME_DERIVS,
    adjoint_weights,
    flatten_state,
    jacobian_size,
    pairs_mask,
    split_state,
)
from fe_weakform.core.model import ElementModelProtocol, StrainModelProtocol
from fe_weakform.core.types import QuantityType
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


class ElementModelTester:
    """1 つの物理モデル・1 つの積分点に対する差分検証.

    状態 (Ut, Ux)、随伴変数 (Psi, Psix)、座標 X は config.seed から生成する。
    明示的に与えた配列はそのまま使う。

    Args:
        model: 検証対象の物理モデル
        elem_index: 要素番号
        time: 時刻
        n: 積分点番号
        pt: パラメトリック座標（None なら乱数）
        X: 物理座標 (3,)（None なら乱数）
        Ut: (vars_per_node, 3)（None なら乱数）
        Ux: (vars_per_node, spatial_dim)（None なら乱数）
        config: 差分ステップ・許容誤差・出力レベル
    """

    def __init__(
        self,
        model: ElementModelProtocol,
        elem_index: int = 0,
        time: float = 0.0,
        n: int = 0,
        pt: np.ndarray | None = None,
        X: np.ndarray | None = None,
        Ut: np.ndarray | None = None,
        Ux: np.ndarray | None = None,
        config: VerificationConfig | None = None,
    ) -> None:
        if not isinstance(model, ElementModelProtocol):
            raise TypeError(f"ElementModelProtocol に適合しません: {type(model).__name__}")
        self.model = model
        self.config = config if config is not None else VerificationConfig()
        self.elem_index = elem_index
        self.time = time
        self.n = n

        self.vars_per_node = model.get_vars_per_node()
        self.spatial_dim = model.get_spatial_dim()
        self.size = jacobian_size(self.vars_per_node, self.spatial_dim)

        rng = np.random.default_rng(self.config.seed)
        v, d = self.vars_per_node, self.spatial_dim
        self.pt = self._init(pt, rng, (d,))
        self.X = self._init(X, rng, (3,))
        self.Xd = rng.uniform(-1.0, 1.0, 9)
        self.Ut = self._init(Ut, rng, (v, NUM_TIME_DERIVS))
        self.Ux = self._init(Ux, rng, (v, d))
        self.Psi = rng.uniform(-1.0, 1.0, v)
        self.Psix = rng.uniform(-1.0, 1.0, (v, d))

    @staticmethod
    def _init(value, rng, shape) -> np.ndarray:
        if value is None:
            return rng.uniform(-1.0, 1.0, shape)
        arr = np.array(value, dtype=float)
        if arr.shape != shape:
            raise ValueError(f"形状が不正です: {arr.shape} (期待値 {shape})")
        return arr

    # ------------------------------------------------------------------
    # 補助
    # ------------------------------------------------------------------

    def _header(self, title: str) -> None:
        if self.config.print_level >= 1:
            name = type(self.model).__name__
            mode = "complex-step" if self.config.complex_step else "central-diff"
            print(f"[{name}] {title} ({mode}, dh={self.config.dh:.1e})")

    def _row_names(self) -> list[str]:
        names = []
        for i in range(self.vars_per_node):
            names += [f"DUt[{i},{k}]" for k in range(NUM_TIME_DERIVS)]
            names += [f"DUx[{i},{j}]" for j in range(self.spatial_dim)]
        return names

    def _residual(self, state: np.ndarray, X: np.ndarray | None = None) -> np.ndarray:
        """平坦化した状態 → 平坦化した弱形式係数."""
        Ut, Ux = split_state(state, self.vars_per_node, self.spatial_dim)
        X = self.X if X is None else X
        wf = self.model.eval_weak_integrand(
            self.elem_index, self.time, self.n, self.pt, X, Ut, Ux
        )
        return flatten_state(wf.DUt, wf.DUx)

    def _design_vars(self) -> np.ndarray:
        ndv = self.model.get_design_var_nums(self.elem_index)
        dvs = np.zeros(ndv)
        self.model.get_design_vars(self.elem_index, dvs)
        return dvs

    def _rng(self, label: str) -> np.random.Generator:
        return perturbation_rng(self.config.seed, label)

    def _design_direction(self, x, ndv: int, rng: np.random.Generator) -> np.ndarray:
        if x is None:
            return rng.uniform(-1.0, 1.0, ndv)
        x = np.asarray(x, dtype=float)
        if x.shape != (ndv,):
            raise ValueError(f"設計摂動の長さが不正です: {x.shape} (設計変数 {ndv})")
        return x

    # ------------------------------------------------------------------
    # 残差
    # ------------------------------------------------------------------

    def test_residual(self) -> VerificationResult:
        """弱形式係数の自己整合性.

        - eval_weak_integrand と eval_weak_jacobian の係数が一致する
        - 入力を書き換えず、同じ入力に対して同じ結果を返す
        - is_symmetric のモデルで相反定理 a·R(b) = b·R(a)
        - 3D ひずみモデルで剛体回転の応力がゼロ
        """
        self._header("test_residual")
        cfg = self.config
        m = self.model
        args = (self.elem_index, self.time, self.n, self.pt, self.X)
        inputs = (self.pt, self.X, self.Ut, self.Ux)
        saved = [a.copy() for a in inputs]

        wf = m.eval_weak_integrand(*args, self.Ut, self.Ux)
        wj = m.eval_weak_jacobian(*args, self.Ut, self.Ux)
        wf2 = m.eval_weak_integrand(*args, self.Ut, self.Ux)
        results = []

        same = np.array_equal(wf.DUt, wj.DUt) and np.array_equal(wf.DUx, wj.DUx)
        diff = float(
            max(np.abs(wf.DUt - wj.DUt).max(), np.abs(wf.DUx - wj.DUx).max())
        )
        results.append(VerificationResult(same, diff, 0.0, "residual:value_path"))
        if cfg.print_level >= 1:
            print(f"  [residual:value_path] {'PASS' if same else 'FAIL'}  max_abs_err={diff:.3e}")

        pure = all(np.array_equal(a, b) for a, b in zip(inputs, saved)) and (
            np.array_equal(wf.DUt, wf2.DUt) and np.array_equal(wf.DUx, wf2.DUx)
        )
        results.append(VerificationResult(pure, 0.0, 0.0, "residual:purity"))
        if cfg.print_level >= 1:
            print(f"  [residual:purity] {'PASS' if pure else 'FAIL'}")

        if getattr(m, "is_symmetric", False):
            rng = self._rng("residual:reciprocity")
            a = rng.uniform(-1.0, 1.0, self.size)
            b = rng.uniform(-1.0, 1.0, self.size)
            results.append(
                compare_values(
                    a @ self._residual(b), b @ self._residual(a), cfg, "residual:reciprocity"
                )
            )

        if (
            isinstance(m, StrainModelProtocol)
            and self.spatial_dim == 3
            and self.vars_per_node >= 3
        ):
            W = self._rng("residual:rigid_rotation").uniform(-1.0, 1.0, (3, 3))
            Ux = np.zeros((self.vars_per_node, 3))
            Ux[:3, :3] = W - W.T
            Ut = np.zeros((self.vars_per_node, NUM_TIME_DERIVS))
            rigid = m.eval_weak_integrand(*args, Ut, Ux)
            results.append(
                compare_values(rigid.DUx, np.zeros_like(rigid.DUx), cfg, "residual:rigid_rotation")
            )

        return merge_results("residual", results)

    # ------------------------------------------------------------------
    # Jacobian
    # ------------------------------------------------------------------

    def test_jacobian(self, column: int | None = None) -> VerificationResult:
        """Jacobian の列を差分と比較する.

        Args:
            column: 検証する列。None なら全列。
        """
        if column is not None and not (0 <= column < self.size):
            raise ValueError(f"列番号が範囲外です: {column} (0..{self.size - 1})")
        self._header("test_jacobian" if column is None else f"test_jacobian(column={column})")
        cfg = self.config
        wj = self.model.eval_weak_jacobian(
            self.elem_index, self.time, self.n, self.pt, self.X, self.Ut, self.Ux
        )
        x0 = flatten_state(self.Ut, self.Ux)
        columns = range(self.size) if column is None else [column]
        rows = self._row_names()

        analytic = []
        fd = []
        names = []
        for c in columns:
            p = np.zeros(self.size)
            p[c] = 1.0
            fd.append(directional_derivative(self._residual, x0, p, cfg))
            analytic.append(wj.Jac[:, c])
            names += [f"J[{r},{c}] ({rows[r]})" for r in range(self.size)]
        results = [
            compare_values(np.concatenate(analytic), np.concatenate(fd), cfg, "jacobian", names)
        ]

        if wj.pairs is not None:
            outside = wj.Jac[~pairs_mask(wj.pairs, self.size)]
            err = float(np.abs(outside).max()) if outside.size else 0.0
            ok = err == 0.0
            if cfg.print_level >= 1:
                print(
                    f"  [jacobian:pattern] {'PASS' if ok else 'FAIL'}"
                    f"  nnz={wj.nnz}  max_outside={err:.3e}"
                )
            results.append(VerificationResult(ok, err, 0.0, "jacobian:pattern"))
        return merge_results("jacobian", results)

    # ------------------------------------------------------------------
    # 設計感度
    # ------------------------------------------------------------------

    def test_adj_res_product(self, x: np.ndarray | None = None) -> VerificationResult:
        """随伴-残差積の設計方向微分と add_weak_adj_product を比較する.

        試験後、設計変数は元の値に戻す。

        Args:
            x: 設計変数の摂動方向。None なら乱数。
        """
        self._header("test_adj_res_product")
        m = self.model
        ndv = m.get_design_var_nums(self.elem_index)
        if ndv == 0:
            return skipped_result("adj_res_product", "設計変数なし", self.config.print_level)
        rng = self._rng("adj_res_product")
        x = self._design_direction(x, ndv, rng)
        scale = rng.uniform(0.5, 2.0)
        w = adjoint_weights(self.Psi, self.Psix)
        dvs0 = self._design_vars()

        dfdx = np.zeros(ndv)
        m.add_weak_adj_product(
            self.elem_index, self.time, self.n, self.pt, self.X,
            self.Ut, self.Ux, self.Psi, self.Psix, scale, dfdx,
        )

        def product(dvs):
            m.set_design_vars(self.elem_index, dvs)
            return scale * (w @ self._residual(flatten_state(self.Ut, self.Ux)))

        try:
            fd = directional_derivative(product, dvs0, x, self.config)
        finally:
            m.set_design_vars(self.elem_index, dvs0)
        return compare_values(dfdx @ x, fd, self.config, "adj_res_product")

    def test_jacobian_xpt_sens(self) -> VerificationResult:
        """eval_weak_adj_xpt_sens_product を (X, Ux, Psix) のランダム方向の差分と比較する."""
        self._header("test_jacobian_xpt_sens")
        cfg = self.config
        v, d = self.vars_per_node, self.spatial_dim
        res = self.model.eval_weak_adj_xpt_sens_product(
            self.elem_index, self.time, self.n, self.pt, self.X,
            self.Ut, self.Ux, self.Psi, self.Psix,
        )
        rng = self._rng("jacobian_xpt_sens")
        pX = rng.uniform(-1.0, 1.0, 3)
        pUx = rng.uniform(-1.0, 1.0, (v, d))
        pPsix = rng.uniform(-1.0, 1.0, (v, d))
        analytic = (
            res.dfdX @ pX + np.sum(res.dfdUx * pUx) + np.sum(res.dfdPsix * pPsix)
        )

        def product(s):
            s = s[0]
            X = self.X + s * pX
            Ux = self.Ux + s * pUx
            Psix = self.Psix + s * pPsix
            w = adjoint_weights(self.Psi, Psix)
            return w @ self._residual(flatten_state(self.Ut, Ux), X)

        direct = product(np.zeros(1))
        fd = directional_derivative(product, np.zeros(1), np.ones(1), cfg)
        return merge_results(
            "jacobian_xpt_sens",
            [
                compare_values(res.product, direct, cfg, "jacobian_xpt_sens:product"),
                compare_values(analytic, fd, cfg, "jacobian_xpt_sens"),
            ],
        )

    # ------------------------------------------------------------------
    # ひずみ・点量
    # ------------------------------------------------------------------

    def test_strain_sv_sens(self) -> VerificationResult:
        """eval_strain_sv_sens を dfde·ε の勾配の差分と比較する."""
        self._header("test_strain_sv_sens")
        m = self.model
        if not isinstance(m, StrainModelProtocol):
            return skipped_result("strain_sv_sens", "ひずみ未定義", self.config.print_level)
        args = (self.elem_index, self.time, self.n, self.pt, self.X)
        e = m.eval_strain(*args, self.Ut, self.Ux)
        dfde = self._rng("strain_sv_sens").uniform(-1.0, 1.0, len(e))
        sens = m.eval_strain_sv_sens(*args, self.Ut, self.Ux, dfde)

        def fun(state):
            Ut, Ux = split_state(state, self.vars_per_node, self.spatial_dim)
            return dfde @ m.eval_strain(*args, Ut, Ux)

        fd = gradient(fun, flatten_state(self.Ut, self.Ux), self.config)
        return compare_values(
            flatten_state(sens.dfdUt, sens.dfdUx), fd, self.config, "strain_sv_sens"
        )

    def _quantity(self, quantity_type, X=None, Xd=None, Ut=None, Ux=None):
        return self.model.eval_point_quantity(
            self.elem_index, quantity_type, self.time, self.n, self.pt,
            self.X if X is None else X,
            self.Xd if Xd is None else Xd,
            self.Ut if Ut is None else Ut,
            self.Ux if Ux is None else Ux,
        )

    def test_quantity_dv_sens(self, quantity_type: int) -> VerificationResult:
        """add_point_quantity_dv_sens を dfdq·q の設計方向差分と比較する."""
        label = f"quantity_dv_sens:{QuantityType(quantity_type).name}"
        self._header(f"test_quantity_dv_sens({QuantityType(quantity_type).name})")
        m = self.model
        length = self._quantity(quantity_type).length
        ndv = m.get_design_var_nums(self.elem_index)
        if length == 0 or ndv == 0:
            return skipped_result(label, "点量または設計変数なし", self.config.print_level)
        rng = self._rng(label)
        dfdq = rng.uniform(-1.0, 1.0, length)
        x = self._design_direction(None, ndv, rng)
        dvs0 = self._design_vars()

        dfdx = np.zeros(ndv)
        m.add_point_quantity_dv_sens(
            self.elem_index, quantity_type, self.time, 1.0, self.n, self.pt,
            self.X, self.Xd, self.Ut, self.Ux, dfdq, dfdx,
        )

        def fun(dvs):
            m.set_design_vars(self.elem_index, dvs)
            return dfdq @ self._quantity(quantity_type).quantity

        try:
            fd = directional_derivative(fun, dvs0, x, self.config)
        finally:
            m.set_design_vars(self.elem_index, dvs0)
        return compare_values(dfdx @ x, fd, self.config, label)

    def test_quantity_sv_sens(self, quantity_type: int) -> VerificationResult:
        """eval_point_quantity_sens を (X, Xd, Ut, Ux) の勾配の差分と比較する."""
        label = f"quantity_sv_sens:{QuantityType(quantity_type).name}"
        self._header(f"test_quantity_sv_sens({QuantityType(quantity_type).name})")
        m = self.model
        length = self._quantity(quantity_type).length
        if length == 0:
            return skipped_result(label, "点量なし", self.config.print_level)
        dfdq = self._rng(label).uniform(-1.0, 1.0, length)
        sens = m.eval_point_quantity_sens(
            self.elem_index, quantity_type, self.time, self.n, self.pt,
            self.X, self.Xd, self.Ut, self.Ux, dfdq,
        )
        v, d = self.vars_per_node, self.spatial_dim
        nX, nXd, nUt = 3, self.Xd.size, v * NUM_TIME_DERIVS

        def fun(z):
            X = z[:nX]
            Xd = z[nX : nX + nXd]
            Ut = z[nX + nXd : nX + nXd + nUt].reshape(v, NUM_TIME_DERIVS)
            Ux = z[nX + nXd + nUt :].reshape(v, d)
            return dfdq @ self._quantity(quantity_type, X, Xd, Ut, Ux).quantity

        z0 = np.concatenate([self.X, self.Xd, self.Ut.ravel(), self.Ux.ravel()])
        fd = gradient(fun, z0, self.config)
        analytic = np.concatenate(
            [
                np.ravel(sens.dfdX),
                np.ravel(sens.dfdXd),
                np.ravel(sens.dfdUt),
                np.ravel(sens.dfdUx),
            ]
        )
        return compare_values(analytic, fd, self.config, label)

    # ------------------------------------------------------------------
    # 一括
    # ------------------------------------------------------------------

    def run_all(self) -> list[VerificationResult]:
        """全ての検証を実行し、結果のリストを返す."""
        results = [
            self.test_residual(),
            self.test_jacobian(),
            self.test_adj_res_product(),
            self.test_strain_sv_sens(),
            self.test_jacobian_xpt_sens(),
        ]
        for qt in QuantityType:
            results.append(self.test_quantity_dv_sens(qt))
            results.append(self.test_quantity_sv_sens(qt))
        if self.config.print_level >= 1:
            n_fail = sum(not r for r in results)
            status = "ALL PASS" if n_fail == 0 else f"{n_fail} FAILED"
            print(f"[{type(self.model).__name__}] run_all: {status} ({len(results)} tests)")
        return results
