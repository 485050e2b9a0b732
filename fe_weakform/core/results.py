"""メソッド戻り値の型定義.

各モデルの公開メソッドが返すデータ構造を NamedTuple で統一的に定義する。
NamedTuple を採用する理由:
  - 名前付きフィールドアクセス（res.DUt, jac.Jac 等）
  - タプルアンパッキング（DUt, DUx = model.eval_weak_integrand(...)）
  - 不変（immutable）で安全
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np
import scipy.sparse as sp


class WeakForm(NamedTuple):
    """弱形式係数.

    Attributes:
        DUt: (vars_per_node, 3) 時間微分項の係数
        DUx: (vars_per_node, spatial_dim) 空間微分項の係数
    """

    DUt: np.ndarray
    DUx: np.ndarray


class WeakJacobian(NamedTuple):
    """弱形式係数とその Jacobian.

    Attributes:
        DUt: eval_weak_integrand と同一の係数
        DUx: 同上
        Jac: (N, N) 密行列 ∂(DUt, DUx)/∂(Ut, Ux)。N = (3+d)*vars_per_node
        pairs: (nnz, 2) 非ゼロ (row, col) の組。密の場合は None。
               物理モデルごとの定数であり、データに依存しない。
    """

    DUt: np.ndarray
    DUx: np.ndarray
    Jac: np.ndarray
    pairs: np.ndarray | None

    @property
    def nnz(self) -> int:
        """非ゼロ数。密行列の場合は -1."""
        return -1 if self.pairs is None else int(self.pairs.shape[0])

    def to_sparse(self) -> sp.csr_matrix:
        """pairs に従った疎行列を返す（pairs が None なら密行列をそのまま変換）."""
        if self.pairs is None:
            return sp.csr_matrix(self.Jac)
        rows = self.pairs[:, 0]
        cols = self.pairs[:, 1]
        return sp.coo_matrix(
            (self.Jac[rows, cols], (rows, cols)), shape=self.Jac.shape
        ).tocsr()


class PointQuantity(NamedTuple):
    """点量の評価結果.

    Attributes:
        length: 点量の長さ。未対応の種別は 0。
        quantity: (length,) 値
    """

    length: int
    quantity: np.ndarray


class QuantitySens(NamedTuple):
    """点量の X, Xd, Ut, Ux に関する感度（dfdq で縮約済み）."""

    dfdX: np.ndarray
    dfdXd: np.ndarray
    dfdUt: np.ndarray
    dfdUx: np.ndarray


class StrainSVSens(NamedTuple):
    """ひずみの状態変数感度（dfde で縮約済み）."""

    dfdUt: np.ndarray
    dfdUx: np.ndarray


class AdjXptSensProduct(NamedTuple):
    """随伴-残差積とその X, Ux, Psix に関する微分.

    product = Psi·(DUt[:,0]+DUt[:,1]+DUt[:,2]) + Psix:DUx

    Attributes:
        product: スカラー積
        dfdX: (3,) 物理座標に関する微分
        dfdUx: (vars_per_node, d)
        dfdPsix: (vars_per_node, d)
    """

    product: complex | float
    dfdX: np.ndarray
    dfdUx: np.ndarray
    dfdPsix: np.ndarray
