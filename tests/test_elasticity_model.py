"""LinearElasticity3D のテスト.

テスト構成:
  1. 弱形式係数（慣性項・応力項の解析値）
  2. Jacobian（値経路の一致・非ゼロパターン・差分検証）
  3. 随伴設計感度・座標感度
  4. ひずみと点量
  5. 可視化出力
  6. Protocol 適合性
"""

from __future__ import annotations

import numpy as np
import pytest

from fe_weakform.core.layout import flatten_state
from fe_weakform.core.model import ElementModelProtocol, StrainModelProtocol
from fe_weakform.core.types import ElementType, OutputFlag, QuantityType, output_width
from fe_weakform.materials.properties import MaterialProperties, voigt_product
from fe_weakform.materials.solid import SolidConstitutive
from fe_weakform.models.elasticity import LinearElasticity3D, strain_3d
from fe_weakform.verification import ElementModelTester, VerificationConfig

RHO = 2.0
E = 10.0
NU = 0.3
YS = 3.0

PT = np.zeros(3)
X = np.array([0.5, -0.25, 1.0])


def _make_model(t: float = 1.2, t_num: int = 0, props: bool = True) -> LinearElasticity3D:
    p = MaterialProperties.isotropic(RHO, E, NU, ys=YS) if props else None
    return LinearElasticity3D(SolidConstitutive(p, t=t, t_num=t_num))


def _make_state(seed: int = 0) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    return rng.uniform(-1.0, 1.0, (3, 3)), rng.uniform(-1.0, 1.0, (3, 3))


class TestWeakIntegrand:
    """弱形式係数."""

    def test_inertia(self):
        m = _make_model(t=1.2)
        Ut, Ux = _make_state()
        DUt, DUx = m.eval_weak_integrand(0, 0.0, 0, PT, X, Ut, Ux)
        np.testing.assert_allclose(DUt[:, 2], 1.2 * RHO * Ut[:, 2])
        np.testing.assert_array_equal(DUt[:, :2], 0.0)

    def test_uniaxial_stress(self):
        m = _make_model(t=1.0)
        Ux = np.zeros((3, 3))
        Ux[0, 0] = 1e-3
        _, DUx = m.eval_weak_integrand(0, 0.0, 0, PT, X, np.zeros((3, 3)), Ux)
        expected = E * (1 - NU) / ((1 + NU) * (1 - 2 * NU)) * 1e-3
        assert DUx[0, 0] == pytest.approx(expected)
        assert DUx[0, 1] == 0.0

    def test_shear_symmetry(self):
        """DUx[0,1] と DUx[1,0] は共に τxy."""
        m = _make_model()
        _, Ux = _make_state(2)
        _, DUx = m.eval_weak_integrand(0, 0.0, 0, PT, X, np.zeros((3, 3)), Ux)
        assert DUx[0, 1] == DUx[1, 0]
        assert DUx[1, 2] == DUx[2, 1]

    def test_degraded_mode_is_zero(self):
        m = _make_model(props=False)
        Ut, Ux = _make_state()
        DUt, DUx = m.eval_weak_integrand(0, 0.0, 0, PT, X, Ut, Ux)
        np.testing.assert_array_equal(DUt, 0.0)
        np.testing.assert_array_equal(DUx, 0.0)


class TestJacobian:
    """Jacobian."""

    def test_value_path_identical(self):
        m = _make_model()
        Ut, Ux = _make_state()
        wf = m.eval_weak_integrand(0, 0.0, 0, PT, X, Ut, Ux)
        wj = m.eval_weak_jacobian(0, 0.0, 0, PT, X, Ut, Ux)
        np.testing.assert_array_equal(wf.DUt, wj.DUt)
        np.testing.assert_array_equal(wf.DUx, wj.DUx)

    def test_shape_and_pattern(self):
        m = _make_model()
        Ut, Ux = _make_state()
        wj = m.eval_weak_jacobian(0, 0.0, 0, PT, X, Ut, Ux)
        assert wj.Jac.shape == (18, 18)
        assert wj.nnz == 3 + 81
        assert wj.pairs is LinearElasticity3D.JAC_PAIRS
        np.testing.assert_array_equal(wj.to_sparse().toarray(), wj.Jac)

    def test_symmetric(self):
        m = _make_model()
        Ut, Ux = _make_state()
        Jac = m.eval_weak_jacobian(0, 0.0, 0, PT, X, Ut, Ux).Jac
        np.testing.assert_allclose(Jac, Jac.T, atol=1e-12)

    def test_linear_residual(self):
        """R(U) = Jac @ U（線形モデル）."""
        m = _make_model()
        Ut, Ux = _make_state(4)
        wj = m.eval_weak_jacobian(0, 0.0, 0, PT, X, Ut, Ux)
        np.testing.assert_allclose(
            flatten_state(wj.DUt, wj.DUx), wj.Jac @ flatten_state(Ut, Ux), atol=1e-12
        )

    def test_fd_all_columns(self):
        tester = ElementModelTester(_make_model(), X=X, config=VerificationConfig(complex_step=False))
        assert tester.test_jacobian()

    def test_complex_step_all_columns(self):
        tester = ElementModelTester(_make_model(), X=X, config=VerificationConfig(complex_step=True))
        assert tester.test_jacobian()


class TestSensitivities:
    """随伴設計感度と座標感度."""

    @pytest.mark.parametrize("complex_step", [False, True])
    def test_adj_res_product(self, complex_step):
        m = _make_model(t=1.2)
        tester = ElementModelTester(m, config=VerificationConfig(complex_step=complex_step))
        assert tester.test_adj_res_product()
        dvs = np.zeros(1)
        m.get_design_vars(0, dvs)
        assert dvs[0] == 1.2

    def test_adj_product_accumulates(self):
        m = _make_model()
        Ut, Ux = _make_state()
        Psi = np.ones(3)
        Psix = np.ones((3, 3))
        dfdx = np.zeros(1)
        m.add_weak_adj_product(0, 0.0, 0, PT, X, Ut, Ux, Psi, Psix, 1.0, dfdx)
        first = dfdx[0]
        m.add_weak_adj_product(0, 0.0, 0, PT, X, Ut, Ux, Psi, Psix, 1.0, dfdx)
        assert dfdx[0] == pytest.approx(2.0 * first)

    def test_no_design_var_no_write(self):
        m = _make_model(t_num=-1)
        Ut, Ux = _make_state()
        dfdx = np.full(1, 3.0)
        m.add_weak_adj_product(0, 0.0, 0, PT, X, Ut, Ux, np.ones(3), np.ones((3, 3)), 1.0, dfdx)
        assert dfdx[0] == 3.0
        assert ElementModelTester(m).test_adj_res_product().skipped

    def test_jacobian_xpt_sens(self):
        tester = ElementModelTester(_make_model(), config=VerificationConfig(complex_step=False))
        assert tester.test_jacobian_xpt_sens()

    def test_xpt_sens_position_independent(self):
        m = _make_model()
        Ut, Ux = _make_state()
        res = m.eval_weak_adj_xpt_sens_product(
            0, 0.0, 0, PT, X, Ut, Ux, np.ones(3), np.ones((3, 3))
        )
        np.testing.assert_array_equal(res.dfdX, np.zeros(3))
        assert res.dfdUx.shape == (3, 3)


class TestStrainAndQuantities:
    """ひずみ・点量."""

    def test_strain_voigt(self):
        Ux = np.arange(9, dtype=float).reshape(3, 3)
        e = strain_3d(Ux)
        np.testing.assert_array_equal(e, [0.0, 4.0, 8.0, 5.0 + 7.0, 2.0 + 6.0, 1.0 + 3.0])

    def test_strain_sv_sens(self):
        assert ElementModelTester(_make_model()).test_strain_sv_sens()

    def test_strain_energy_density(self):
        m = _make_model(t=1.0)
        Ut, Ux = _make_state()
        q = m.eval_point_quantity(
            0, QuantityType.STRAIN_ENERGY_DENSITY, 0.0, 0, PT, X, np.zeros(9), Ut, Ux
        )
        e = strain_3d(Ux)
        C = MaterialProperties.isotropic(RHO, E, NU).eval_tangent_stiffness_3d()
        assert q.length == 1
        assert q.quantity[0] == pytest.approx(0.5 * e @ voigt_product(C, e))

    def test_displacement_quantity(self):
        m = _make_model()
        Ut, Ux = _make_state()
        q = m.eval_point_quantity(0, QuantityType.DISPLACEMENT, 0.0, 0, PT, X, np.zeros(9), Ut, Ux)
        assert q.length == 3
        np.testing.assert_array_equal(q.quantity, Ut[:, 0])

    def test_unsupported_quantity(self):
        m = _make_model()
        Ut, Ux = _make_state()
        q = m.eval_point_quantity(0, QuantityType.TEMPERATURE, 0.0, 0, PT, X, np.zeros(9), Ut, Ux)
        assert q.length == 0
        assert q.quantity.size == 0

    @pytest.mark.parametrize(
        "qt",
        [
            QuantityType.FAILURE_INDEX,
            QuantityType.ELEMENT_DENSITY,
            QuantityType.STRAIN_ENERGY_DENSITY,
            QuantityType.DISPLACEMENT,
        ],
    )
    def test_quantity_sensitivities(self, qt):
        tester = ElementModelTester(_make_model(), config=VerificationConfig(seed=5))
        assert tester.test_quantity_sv_sens(qt)
        assert tester.test_quantity_dv_sens(qt)


class TestOutput:
    """可視化出力."""

    def test_full_row(self):
        m = _make_model()
        Ut, Ux = _make_state()
        flags = (
            OutputFlag.NODES
            | OutputFlag.DISPLACEMENTS
            | OutputFlag.STRAINS
            | OutputFlag.STRESSES
            | OutputFlag.EXTRAS
        )
        row = m.get_output_data(0, 0.0, ElementType.SOLID, flags, PT, X, Ut, Ux)
        assert row.shape == (output_width(ElementType.SOLID, flags),)
        np.testing.assert_array_equal(row[:3], X)
        np.testing.assert_array_equal(row[3:6], Ut[:, 0])
        assert row[-1] == pytest.approx(1.2)

    def test_mismatched_type_is_empty(self):
        m = _make_model()
        Ut, Ux = _make_state()
        row = m.get_output_data(0, 0.0, ElementType.BAR_1D, OutputFlag.NODES, PT, X, Ut, Ux)
        assert row.size == 0


class TestProtocol:
    """Protocol 適合性."""

    def test_protocols(self):
        m = _make_model()
        assert isinstance(m, ElementModelProtocol)
        assert isinstance(m, StrainModelProtocol)
        assert m.get_spatial_dim() == 3
        assert m.get_vars_per_node() == 3
        assert m.get_element_type() == ElementType.SOLID

    def test_design_var_delegation(self):
        m = _make_model(t_num=4)
        buf = np.zeros(1, dtype=int)
        assert m.get_design_var_nums(0, buf) == 1
        assert buf[0] == 4

    @pytest.mark.slow
    def test_run_all(self):
        results = ElementModelTester(_make_model(), config=VerificationConfig(seed=11)).run_all()
        assert all(results), [r for r in results if not r]
