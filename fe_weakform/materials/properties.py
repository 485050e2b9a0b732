"""材料物性ソースと 3D 弾性テンソルのユーティリティ.

Voigt 表記: σ = [σxx, σyy, σzz, τyz, τxz, τxy]
            ε = [εxx, εyy, εzz, γyz, γxz, γxy]  （せん断は工学ひずみ）

対称 6×6 弾性テンソルは上三角 21 成分を行優先で保持する:
  C[0..5]   = 行 0 (00, 01, 02, 03, 04, 05)
  C[6..10]  = 行 1 (11, 12, 13, 14, 15)
  C[11..14] = 行 2 (22, 23, 24, 25)
  C[15..17] = 行 3 (33, 34, 35)
  C[18..19] = 行 4 (44, 45)
  C[20]     = 行 5 (55)
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

NUM_STIFFNESS = 21

_TRIU = np.triu_indices(6)

# 6×6 の各成分 → 21 成分配列のインデックス
_SYM_IDX = np.zeros((6, 6), dtype=np.int64)
_SYM_IDX[_TRIU] = np.arange(NUM_STIFFNESS)
_SYM_IDX.T[_TRIU] = np.arange(NUM_STIFFNESS)

# 3×3 対称テンソル [k11, k12, k13, k22, k23, k33] のインデックス
_SYM3_IDX = np.array([[0, 1, 2], [1, 3, 4], [2, 4, 5]], dtype=np.int64)


def voigt_pack(D: np.ndarray) -> np.ndarray:
    """対称 6×6 行列を 21 成分に詰める."""
    return np.asarray(D)[_TRIU].copy()


def voigt_matrix(C: np.ndarray) -> np.ndarray:
    """21 成分から対称 6×6 行列を復元する."""
    return np.asarray(C)[_SYM_IDX]


def voigt_product(C: np.ndarray, e: np.ndarray) -> np.ndarray:
    """σ = C·ε (21 成分表現のまま)."""
    return voigt_matrix(C) @ e


def sym3_matrix(k: np.ndarray) -> np.ndarray:
    """[k11, k12, k13, k22, k23, k33] から 3×3 対称行列を復元する."""
    return np.asarray(k)[_SYM3_IDX]


def stiffness_isotropic_3d(E: float, nu: float) -> np.ndarray:
    """3D 等方弾性テンソル (21,) を返す.

    Args:
        E: ヤング率
        nu: ポアソン比

    Returns:
        C: (21,) 上三角成分
    """
    lam = E * nu / ((1.0 + nu) * (1.0 - 2.0 * nu))
    mu = E / (2.0 * (1.0 + nu))
    D = np.zeros((6, 6), dtype=float)
    # 法線成分
    D[0, 0] = D[1, 1] = D[2, 2] = lam + 2.0 * mu
    D[0, 1] = D[0, 2] = D[1, 0] = D[1, 2] = D[2, 0] = D[2, 1] = lam
    # せん断成分
    D[3, 3] = D[4, 4] = D[5, 5] = mu
    return voigt_pack(D)


def stiffness_orthotropic_3d(
    E1: float,
    E2: float,
    E3: float,
    nu12: float,
    nu13: float,
    nu23: float,
    G23: float,
    G13: float,
    G12: float,
) -> np.ndarray:
    """3D 直交異方性弾性テンソル (21,) を返す.

    コンプライアンス行列の法線ブロックを反転して求める:
      S = [[1/E1, -nu12/E1, -nu13/E1],
           [-nu12/E1, 1/E2, -nu23/E2],
           [-nu13/E1, -nu23/E2, 1/E3]]
    せん断は非連成 (C33=G23, C44=G13, C55=G12)。

    Raises:
        ValueError: 弾性係数が正でない、またはコンプライアンスが正定値でない
    """
    for name, val in (
        ("E1", E1), ("E2", E2), ("E3", E3), ("G23", G23), ("G13", G13), ("G12", G12)
    ):
        if val <= 0:
            raise ValueError(f"弾性係数 {name} は正値でなければなりません: {val}")

    S = np.array(
        [
            [1.0 / E1, -nu12 / E1, -nu13 / E1],
            [-nu12 / E1, 1.0 / E2, -nu23 / E2],
            [-nu13 / E1, -nu23 / E2, 1.0 / E3],
        ],
        dtype=float,
    )
    if np.linalg.eigvalsh(S).min() <= 0.0:
        raise ValueError(
            f"ポアソン比の組合せが不正です（コンプライアンスが正定値でない）: "
            f"nu12={nu12}, nu13={nu13}, nu23={nu23}"
        )
    D = np.zeros((6, 6), dtype=float)
    D[:3, :3] = np.linalg.inv(S)
    D[3, 3] = G23
    D[4, 4] = G13
    D[5, 5] = G12
    return voigt_pack(D)


def _principal3(value: float | tuple | list | np.ndarray) -> np.ndarray:
    arr = np.atleast_1d(np.asarray(value, dtype=float))
    if arr.shape == (1,):
        arr = np.repeat(arr, 3)
    if arr.shape != (3,):
        raise ValueError(f"スカラーまたは 3 成分が必要です: shape={arr.shape}")
    return arr


def von_mises_failure_3d(s: np.ndarray, ys: float):
    """von Mises 破損指標 σ_vm / σ_y."""
    vm2 = (
        0.5 * ((s[0] - s[1]) ** 2 + (s[0] - s[2]) ** 2 + (s[1] - s[2]) ** 2)
        + 3.0 * (s[3] ** 2 + s[4] ** 2 + s[5] ** 2)
    )
    return np.sqrt(vm2) / ys


def von_mises_failure_3d_stress_sens(s: np.ndarray, ys: float) -> tuple:
    """von Mises 破損指標とその応力微分.

    応力ゼロでは微分は定義されないため dfds = 0 とする。

    Returns:
        (fail, dfds): fail スカラー, dfds (6,)
    """
    fail = von_mises_failure_3d(s, ys)
    dfds = np.zeros(6, dtype=np.result_type(np.float64, s))
    if fail == 0.0:
        return fail, dfds
    fact = 0.5 / (ys * ys * fail)
    dfds[0] = fact * (2.0 * s[0] - s[1] - s[2])
    dfds[1] = fact * (2.0 * s[1] - s[0] - s[2])
    dfds[2] = fact * (2.0 * s[2] - s[0] - s[1])
    dfds[3] = fact * 6.0 * s[3]
    dfds[4] = fact * 6.0 * s[4]
    dfds[5] = fact * 6.0 * s[5]
    return fail, dfds


@dataclass
class MaterialProperties:
    """3D 固体の材料物性ソース.

    コンストラクタを直接使うより isotropic() / orthotropic() を使う。

    Attributes:
        rho: 密度
        C: (21,) 弾性テンソル
        specific_heat: 比熱
        alpha: (6,) 単位温度上昇あたりの熱ひずみ
        kappa: (6,) 熱伝導率 [k11, k12, k13, k22, k23, k33]
        ys: 降伏応力（破損指標の基準）
        name: 材料名
    """

    rho: float
    C: np.ndarray
    specific_heat: float = 0.0
    alpha: np.ndarray = field(default_factory=lambda: np.zeros(6))
    kappa: np.ndarray = field(default_factory=lambda: np.zeros(6))
    ys: float = 1.0
    name: str = ""

    def __post_init__(self) -> None:
        self.C = np.asarray(self.C, dtype=float)
        if self.C.shape != (NUM_STIFFNESS,):
            raise ValueError(f"弾性テンソルは 21 成分: shape={self.C.shape}")
        if self.ys <= 0:
            raise ValueError(f"降伏応力 ys は正値でなければなりません: {self.ys}")

    @classmethod
    def isotropic(
        cls,
        rho: float,
        E: float,
        nu: float,
        *,
        specific_heat: float = 0.0,
        alpha: float = 0.0,
        kappa: float = 0.0,
        ys: float = 1.0,
        name: str = "isotropic",
    ) -> MaterialProperties:
        """等方材料.

        Args:
            rho: 密度
            E: ヤング率
            nu: ポアソン比
            specific_heat: 比熱
            alpha: 線膨張係数
            kappa: 熱伝導率
            ys: 降伏応力
        """
        if E <= 0:
            raise ValueError(f"ヤング率 E は正値でなければなりません: {E}")
        if not (-1.0 < nu < 0.5):
            raise ValueError(f"ポアソン比 nu は (-1, 0.5): {nu}")
        a = _principal3(alpha)
        k = _principal3(kappa)
        return cls(
            rho=rho,
            C=stiffness_isotropic_3d(E, nu),
            specific_heat=specific_heat,
            alpha=np.array([a[0], a[1], a[2], 0.0, 0.0, 0.0]),
            kappa=np.array([k[0], 0.0, 0.0, k[1], 0.0, k[2]]),
            ys=ys,
            name=name,
        )

    @classmethod
    def orthotropic(
        cls,
        rho: float,
        E1: float,
        E2: float,
        E3: float,
        nu12: float,
        nu13: float,
        nu23: float,
        G23: float,
        G13: float,
        G12: float,
        *,
        specific_heat: float = 0.0,
        alpha: float | tuple[float, float, float] = 0.0,
        kappa: float | tuple[float, float, float] = 0.0,
        ys: float = 1.0,
        name: str = "orthotropic",
    ) -> MaterialProperties:
        """直交異方性材料（材料主軸 = 座標軸）."""
        a = _principal3(alpha)
        k = _principal3(kappa)
        return cls(
            rho=rho,
            C=stiffness_orthotropic_3d(E1, E2, E3, nu12, nu13, nu23, G23, G13, G12),
            specific_heat=specific_heat,
            alpha=np.array([a[0], a[1], a[2], 0.0, 0.0, 0.0]),
            kappa=np.array([k[0], 0.0, 0.0, k[1], 0.0, k[2]]),
            ys=ys,
            name=name,
        )

    def get_density(self) -> float:
        return self.rho

    def get_specific_heat(self) -> float:
        return self.specific_heat

    def eval_tangent_stiffness_3d(self) -> np.ndarray:
        """弾性テンソル (21,) のコピー."""
        return self.C.copy()

    def eval_thermal_strain_3d(self) -> np.ndarray:
        """単位温度上昇あたりの熱ひずみ (6,)."""
        return self.alpha.copy()

    def eval_tangent_heat_flux_3d(self) -> np.ndarray:
        """熱伝導率 (6,)."""
        return self.kappa.copy()

    def von_mises_failure_3d(self, s: np.ndarray):
        return von_mises_failure_3d(s, self.ys)

    def von_mises_failure_3d_stress_sens(self, s: np.ndarray) -> tuple:
        return von_mises_failure_3d_stress_sens(s, self.ys)
