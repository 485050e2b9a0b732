"""VonKarmanBar1D のテスト."""

from __future__ import annotations

import warnings

import numpy as np
import pytest

from fe_weakform.core.model import ElementModelProtocol, StrainModelProtocol
from fe_weakform.core.types import ElementType, OutputFlag, QuantityType
from fe_weakform.models.bar1d import VonKarmanBar1D
from fe_weakform.verification import ElementModelTester, VerificationConfig

RHO = 3.0
E = 50.0
AREA = 0.4

PT = np.zeros(1)
X = np.zeros(3)


def _make_bar(a_num: int = 2) -> VonKarmanBar1D:
    return VonKarmanBar1D(RHO, E, AREA, a_num=a_num, a_lb=0.01, a_ub=10.0)


def _state(ux: float = 0.02, wx: float = 0.3) -> tuple[np.ndarray, np.ndarray]:
    Ut = np.array([[0.1, 0.2, 0.3], [-0.4, 0.5, -0.6]])
    Ux = np.array([[ux], [wx]])
    return Ut, Ux


class TestBarWeakForm:
    """弱形式と Jacobian."""

    def test_axial_force(self):
        bar = _make_bar()
        Ut, Ux = _state(0.02, 0.3)
        DUt, DUx = bar.eval_weak_integrand(0, 0.0, 0, PT, X, Ut, Ux)
        N = E * AREA * (0.02 + 0.5 * 0.3**2)
        assert DUx[0, 0] == pytest.approx(N)
        assert DUx[1, 0] == pytest.approx(N * 0.3)
        np.testing.assert_allclose(DUt[:, 2], RHO * AREA * Ut[:, 2])

    def test_jacobian_entries(self):
        bar = _make_bar()
        Ut, Ux = _state(0.02, 0.3)
        wj = bar.eval_weak_jacobian(0, 0.0, 0, PT, X, Ut, Ux)
        EA = E * AREA
        N = EA * (0.02 + 0.045)
        assert wj.Jac.shape == (8, 8)
        assert wj.nnz == 6
        assert wj.Jac[3, 3] == pytest.approx(EA)
        assert wj.Jac[3, 7] == pytest.approx(EA * 0.3)
        assert wj.Jac[7, 3] == pytest.approx(EA * 0.3)
        assert wj.Jac[7, 7] == pytest.approx(EA * 0.09 + N)

    def test_first_column(self):
        """列 0 の差分検証（dh=1e-6）."""
        Ut, Ux = _state()
        tester = ElementModelTester(
            _make_bar(), pt=PT, X=X, Ut=Ut, Ux=Ux,
            config=VerificationConfig(dh=1e-6, complex_step=False),
        )
        assert tester.test_jacobian(column=0)

    @pytest.mark.parametrize("column", [2, 3, 6, 7])
    def test_nonzero_columns(self, column):
        Ut, Ux = _state()
        tester = ElementModelTester(
            _make_bar(), Ut=Ut, Ux=Ux, config=VerificationConfig(complex_step=False)
        )
        assert tester.test_jacobian(column=column)

    @pytest.mark.parametrize("complex_step", [False, True])
    def test_all_columns(self, complex_step):
        tester = ElementModelTester(_make_bar(), config=VerificationConfig(complex_step=complex_step))
        assert tester.test_jacobian()

    def test_column_out_of_range(self):
        with pytest.raises(ValueError, match="列番号"):
            ElementModelTester(_make_bar()).test_jacobian(column=8)

    def test_residual_not_symmetric(self):
        bar = _make_bar()
        assert not bar.is_symmetric
        assert ElementModelTester(bar).test_residual()


class TestBarDesign:
    """断面積の設計変数."""

    def test_roundtrip(self):
        bar = _make_bar()
        bar.set_design_vars(0, np.array([0.9]))
        out = np.zeros(1)
        bar.get_design_vars(0, out)
        assert out[0] == 0.9

    def test_size_query(self):
        bar = _make_bar(a_num=5)
        assert bar.get_design_var_nums(0) == 1
        nums = np.zeros(1, dtype=int)
        bar.get_design_var_nums(0, nums)
        assert nums[0] == 5
        assert _make_bar(a_num=-1).get_design_var_nums(0) == 0

    @pytest.mark.parametrize("area", [20.0, 0.001, -0.5])
    def test_out_of_range_warns(self, area):
        bar = _make_bar()
        with pytest.warns(UserWarning, match="範囲"):
            bar.set_design_vars(0, np.array([area]))
        assert bar.A == area

    def test_nonpositive_area_warns_with_default_bounds(self):
        bar = VonKarmanBar1D(RHO, E, AREA, a_num=0)
        with pytest.warns(UserWarning, match="非正"):
            bar.set_design_vars(0, np.array([0.0]))

    def test_in_range_no_warning(self):
        bar = _make_bar()
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            bar.set_design_vars(0, np.array([5.0]))
        assert bar.A == 5.0

    def test_range(self):
        lb = np.zeros(1)
        ub = np.zeros(1)
        _make_bar().get_design_var_range(0, lb, ub)
        assert (lb[0], ub[0]) == (0.01, 10.0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"rho": -1.0, "E": 1.0, "A": 1.0},
            {"rho": 1.0, "E": 0.0, "A": 1.0},
            {"rho": 1.0, "E": 1.0, "A": 0.0},
            {"rho": 1.0, "E": 1.0, "A": 1.0, "a_lb": 2.0, "a_ub": 1.0},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            VonKarmanBar1D(**kwargs)

    @pytest.mark.parametrize("complex_step", [False, True])
    def test_adj_res_product(self, complex_step):
        bar = _make_bar()
        tester = ElementModelTester(bar, config=VerificationConfig(complex_step=complex_step))
        assert tester.test_adj_res_product()
        assert bar.A == AREA

    def test_xpt_sens(self):
        assert ElementModelTester(_make_bar()).test_jacobian_xpt_sens()

    def test_adj_product_accumulates(self):
        bar = _make_bar()
        Ut, Ux = _state()
        args = (0, 0.0, 0, PT, X, Ut, Ux, np.ones(2), np.ones((2, 1)), 1.0)
        d = np.zeros(1)
        bar.add_weak_adj_product(*args, d)
        dfdx = np.full(1, 3.0)
        bar.add_weak_adj_product(*args, dfdx)
        assert d[0] != 0.0
        assert dfdx[0] == pytest.approx(3.0 + d[0])

    @pytest.mark.parametrize(
        "qt", [QuantityType.ELEMENT_DENSITY, QuantityType.STRAIN_ENERGY_DENSITY]
    )
    def test_quantity_dv_sens_accumulates(self, qt):
        bar = _make_bar()
        Ut, Ux = _state()
        args = (0, qt, 0.0, 1.0, 0, PT, X, np.zeros(9), Ut, Ux, np.ones(1))
        d = np.zeros(1)
        bar.add_point_quantity_dv_sens(*args, d)
        dfdx = np.full(1, 3.0)
        bar.add_point_quantity_dv_sens(*args, dfdx)
        assert d[0] != 0.0
        assert dfdx[0] == pytest.approx(3.0 + d[0])


class TestBarQuantities:
    """ひずみ・点量・出力."""

    def test_strain(self):
        bar = _make_bar()
        assert isinstance(bar, ElementModelProtocol)
        assert isinstance(bar, StrainModelProtocol)
        Ut, Ux = _state(0.02, 0.3)
        e = bar.eval_strain(0, 0.0, 0, PT, X, Ut, Ux)
        np.testing.assert_allclose(e, [0.065])
        assert ElementModelTester(bar).test_strain_sv_sens()

    @pytest.mark.parametrize(
        "qt",
        [
            QuantityType.ELEMENT_DENSITY,
            QuantityType.STRAIN_ENERGY_DENSITY,
            QuantityType.DISPLACEMENT,
        ],
    )
    def test_quantity_sensitivities(self, qt):
        tester = ElementModelTester(_make_bar(), config=VerificationConfig(seed=4))
        assert tester.test_quantity_sv_sens(qt)
        assert tester.test_quantity_dv_sens(qt)

    def test_heat_flux_unsupported(self):
        Ut, Ux = _state()
        q = _make_bar().eval_point_quantity(
            0, QuantityType.HEAT_FLUX, 0.0, 0, PT, X, np.zeros(9), Ut, Ux
        )
        assert q.length == 0

    def test_output_row(self):
        bar = _make_bar()
        Ut, Ux = _state(0.02, 0.3)
        flags = OutputFlag.NODES | OutputFlag.STRESSES | OutputFlag.EXTRAS
        row = bar.get_output_data(0, 0.0, ElementType.BAR_1D, flags, PT, X, Ut, Ux)
        np.testing.assert_allclose(row, [0.0, E * AREA * 0.065, AREA])
        assert bar.get_output_data(0, 0.0, ElementType.SOLID, flags, PT, X, Ut, Ux).size == 0

    @pytest.mark.slow
    def test_run_all(self):
        results = ElementModelTester(_make_bar(), config=VerificationConfig(seed=1)).run_all()
        assert all(results), [r for r in results if not r]
