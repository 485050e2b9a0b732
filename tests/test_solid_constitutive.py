"""SolidConstitutive のテスト.

テスト構成:
  1. 設計変数（番号問い合わせ・往復・範囲・長さ不足）
  2. 縮退モード（物性ソースなし）
  3. 応力の一貫性と厚さスケーリング
  4. 密度・比熱・熱流束と設計感度
  5. 破損指標とひずみ感度
  6. ConstitutiveProtocol 適合性と ConstitutiveTester
"""

from __future__ import annotations

import warnings

import numpy as np
import pytest

from fe_weakform.core.constitutive import ConstitutiveProtocol
from fe_weakform.materials.properties import MaterialProperties, voigt_product
from fe_weakform.materials.solid import SolidConstitutive
from fe_weakform.verification import ConstitutiveTester, VerificationConfig

RHO = 2.5
E = 10.0
NU = 0.3
CP = 3.0
KAPPA = 2.0
YS = 4.0

PT = np.zeros(3)
X = np.array([0.1, 0.2, 0.3])


def _make_props() -> MaterialProperties:
    return MaterialProperties.isotropic(
        RHO, E, NU, specific_heat=CP, alpha=0.01, kappa=KAPPA, ys=YS
    )


def _make_con(t: float = 1.5, t_num: int = 7) -> SolidConstitutive:
    return SolidConstitutive(_make_props(), t=t, t_num=t_num, t_lb=0.1, t_ub=10.0)


class TestDesignVars:
    """設計変数の取得・設定."""

    def test_size_query_without_buffer(self):
        con = _make_con()
        assert con.get_design_var_nums(0) == 1
        assert con.get_design_var_nums(0, None) == 1

    def test_size_query_with_empty_buffer(self):
        con = _make_con()
        buf = np.zeros(0, dtype=int)
        assert con.get_design_var_nums(0, buf) == 1
        assert buf.size == 0

    def test_writes_number(self):
        con = _make_con()
        buf = np.full(2, -1, dtype=int)
        assert con.get_design_var_nums(0, buf) == 1
        np.testing.assert_array_equal(buf, [7, -1])

    def test_no_design_var(self):
        con = SolidConstitutive(_make_props(), t=1.0)
        buf = np.full(1, -1, dtype=int)
        assert con.get_design_var_nums(0, buf) == 0
        assert buf[0] == -1
        dvs = np.array([5.0])
        con.set_design_vars(0, dvs)
        assert con.t == 1.0
        out = np.zeros(1)
        con.get_design_vars(0, out)
        assert out[0] == 0.0

    def test_roundtrip(self):
        con = _make_con()
        con.set_design_vars(0, np.array([2.25]))
        out = np.zeros(1)
        con.get_design_vars(0, out)
        assert out[0] == 2.25

    def test_short_buffer_is_ignored(self):
        con = _make_con(t=1.5)
        con.set_design_vars(0, np.zeros(0))
        assert con.t == 1.5

    def test_range(self):
        con = _make_con()
        lb = np.zeros(1)
        ub = np.zeros(1)
        con.get_design_var_range(0, lb, ub)
        assert lb[0] == 0.1
        assert ub[0] == 10.0

    def test_out_of_range_warns(self):
        con = _make_con()
        with pytest.warns(UserWarning, match="範囲"):
            con.set_design_vars(0, np.array([20.0]))
        assert con.t == 20.0

    def test_in_range_no_warning(self):
        con = _make_con()
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            con.set_design_vars(0, np.array([5.0]))

    def test_invalid_bounds(self):
        with pytest.raises(ValueError, match="下限"):
            SolidConstitutive(_make_props(), t_lb=2.0, t_ub=1.0)


class TestDegradedMode:
    """物性ソースが無い場合は全てゼロ."""

    def test_zero_outputs(self):
        con = SolidConstitutive()
        e = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        np.testing.assert_array_equal(con.eval_stress(0, PT, X, e), np.zeros(6))
        assert con.eval_density(0, PT, X) == 0.0
        assert con.eval_specific_heat(0, PT, X) == 0.0
        np.testing.assert_array_equal(con.eval_tangent_stiffness(0, PT, X), np.zeros(21))
        np.testing.assert_array_equal(con.eval_heat_flux(0, PT, X, np.ones(3)), np.zeros(3))
        assert con.eval_failure(0, PT, X, e) == 0.0

    def test_sensitivities_add_nothing(self):
        con = SolidConstitutive(t_num=0)
        dfdx = np.zeros(1)
        con.add_stress_dv_sens(0, 1.0, PT, X, np.ones(6), np.ones(6), dfdx)
        con.add_density_dv_sens(0, 1.0, PT, X, dfdx)
        assert dfdx[0] == 0.0


class TestStress:
    """応力と接線剛性."""

    def test_consistency_law_exact(self):
        con = _make_con()
        rng = np.random.default_rng(1)
        for _ in range(5):
            e = rng.uniform(-1.0, 1.0, 6)
            s = con.eval_stress(0, PT, X, e)
            s_ref = voigt_product(con.eval_tangent_stiffness(0, PT, X), e)
            np.testing.assert_array_equal(s, s_ref)

    def test_uniform_thickness_scaling(self):
        con = _make_con(t=2.0)
        C0 = _make_props().eval_tangent_stiffness_3d()
        np.testing.assert_allclose(con.eval_tangent_stiffness(0, PT, X), 2.0 * C0)

    def test_scenario_aluminium(self):
        props = MaterialProperties.isotropic(1.0, 70e9, 0.3)
        con = SolidConstitutive(props)
        s = con.eval_stress(0, PT, X, np.array([1e-4, 0.0, 0.0, 0.0, 0.0, 0.0]))
        expected = 70e9 / ((1 + 0.3) * (1 - 0.6)) * ((1 - 0.3) * 1e-4)
        assert abs(s[0] - expected) / expected < 1e-6

    def test_num_stresses(self):
        assert _make_con().get_num_stresses() == 6
        assert _make_con().constitutive_name() == "SolidConstitutive"

    def test_thermal_strain_linear(self):
        con = _make_con()
        np.testing.assert_allclose(
            con.eval_thermal_strain(0, PT, X, 3.0),
            3.0 * con.eval_thermal_strain(0, PT, X, 1.0),
        )

    def test_stress_dv_sens(self):
        con = _make_con(t=1.5)
        e = np.array([0.1, -0.2, 0.3, 0.05, 0.0, -0.1])
        psi = np.array([1.0, 0.5, -0.5, 0.2, 0.3, 0.1])
        dfdx = np.array([1.0])
        con.add_stress_dv_sens(0, 2.0, PT, X, e, psi, dfdx)
        C0 = _make_props().eval_tangent_stiffness_3d()
        assert dfdx[0] == pytest.approx(1.0 + 2.0 * psi @ voigt_product(C0, e))


class TestScalarProperties:
    """密度・比熱・熱流束."""

    def test_density_and_specific_heat_scale(self):
        con = _make_con(t=1.5)
        assert con.eval_density(0, PT, X) == pytest.approx(1.5 * RHO)
        assert con.eval_specific_heat(0, PT, X) == pytest.approx(1.5 * CP)
        np.testing.assert_allclose(con.get_pointwise_mass(0, PT, X), [1.5 * RHO])

    def test_density_dv_sens_accumulates(self):
        con = _make_con()
        dfdx = np.array([0.5])
        con.add_density_dv_sens(0, 2.0, PT, X, dfdx)
        con.add_density_dv_sens(0, 1.0, PT, X, dfdx)
        assert dfdx[0] == pytest.approx(0.5 + 3.0 * RHO)

    def test_heat_flux(self):
        con = _make_con(t=2.0)
        grad = np.array([1.0, -2.0, 0.5])
        np.testing.assert_allclose(con.eval_heat_flux(0, PT, X, grad), 2.0 * KAPPA * grad)

    def test_heat_flux_dv_sens(self):
        con = _make_con()
        grad = np.array([1.0, -2.0, 0.5])
        psi = np.array([0.3, 0.1, -1.0])
        dfdx = np.zeros(1)
        con.add_heat_flux_dv_sens(0, 1.0, PT, X, grad, psi, dfdx)
        assert dfdx[0] == pytest.approx(KAPPA * psi @ grad)


class TestFailure:
    """破損指標."""

    def test_failure_independent_of_thickness(self):
        e = np.array([0.1, 0.0, 0.0, 0.0, 0.0, 0.0])
        f1 = _make_con(t=1.0).eval_failure(0, PT, X, e)
        f2 = _make_con(t=3.0).eval_failure(0, PT, X, e)
        assert f1 == pytest.approx(f2)

    def test_failure_dv_sens_is_zero(self):
        dfdx = np.array([1.0])
        _make_con().add_failure_dv_sens(0, 5.0, PT, X, np.ones(6), dfdx)
        assert dfdx[0] == 1.0

    def test_failure_strain_sens_value(self):
        con = _make_con()
        e = np.array([0.1, -0.05, 0.02, 0.01, 0.03, -0.02])
        fail, dfde = con.eval_failure_strain_sens(0, PT, X, e)
        assert fail == pytest.approx(con.eval_failure(0, PT, X, e))
        assert dfde.shape == (6,)


class TestProtocolAndTester:
    """ConstitutiveProtocol 適合性と差分検証."""

    def test_protocol(self):
        assert isinstance(_make_con(), ConstitutiveProtocol)
        assert isinstance(SolidConstitutive(), ConstitutiveProtocol)

    def test_tester_real(self):
        tester = ConstitutiveTester(_make_con(), config=VerificationConfig(complex_step=False))
        results = tester.run_all()
        assert all(results), results

    def test_tester_complex_step(self):
        tester = ConstitutiveTester(_make_con(), config=VerificationConfig(complex_step=True))
        assert tester.test_failure_strain_sens()
        assert tester.test_stress_dv_sens()

    def test_tester_restores_design_vars(self):
        con = _make_con(t=1.5)
        ConstitutiveTester(con).test_stress_dv_sens()
        assert con.t == 1.5

    def test_tester_without_design_vars_skips(self):
        res = ConstitutiveTester(SolidConstitutive(_make_props())).test_stress_dv_sens()
        assert res.passed
        assert res.skipped
