"""点ごとの状態ベクトルと Jacobian の並び.

各変数 i について 3 + spatial_dim 成分のブロックを持つ:

  index:  i*(3+d) + 0   i*(3+d) + 1   i*(3+d) + 2   i*(3+d) + 3 ... + 2+d
  行:     DUt[i,0]      DUt[i,1]      DUt[i,2]      DUx[i,0] ... DUx[i,d-1]
  列:     u_i           u_i,t         u_i,tt        u_i,x1 ...  u_i,xd

例（d=2, U=(u, v)）: Jacobian は 10×10。
"""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np

NUM_TIME_DERIVS = 3


def block_size(spatial_dim: int) -> int:
    """1変数あたりの成分数 (3 + spatial_dim)."""
    return NUM_TIME_DERIVS + spatial_dim


def jacobian_size(vars_per_node: int, spatial_dim: int) -> int:
    """Jacobian の行数（=列数）."""
    return block_size(spatial_dim) * vars_per_node


def ut_index(var: int, k: int, spatial_dim: int) -> int:
    """Ut[var, k] (k=0,1,2) の平坦化インデックス."""
    return var * block_size(spatial_dim) + k


def ux_index(var: int, j: int, spatial_dim: int) -> int:
    """Ux[var, j] (j=0..d-1) の平坦化インデックス."""
    return var * block_size(spatial_dim) + NUM_TIME_DERIVS + j


def flatten_state(Ut: np.ndarray, Ux: np.ndarray) -> np.ndarray:
    """(Ut, Ux) を Jacobian の列順の 1 次元配列に並べる."""
    return np.hstack([Ut, Ux]).ravel()


def split_state(
    vec: np.ndarray,
    vars_per_node: int,
    spatial_dim: int,
) -> tuple[np.ndarray, np.ndarray]:
    """flatten_state の逆変換.

    Returns:
        Ut: (vars_per_node, 3)
        Ux: (vars_per_node, spatial_dim)
    """
    m = np.asarray(vec).reshape(vars_per_node, block_size(spatial_dim))
    return m[:, :NUM_TIME_DERIVS].copy(), m[:, NUM_TIME_DERIVS:].copy()


def adjoint_weights(Psi: np.ndarray, Psix: np.ndarray) -> np.ndarray:
    """随伴変数を Jacobian の行順の重みベクトルに並べる.

    随伴-残差積 Psi·(DUt[:,0]+DUt[:,1]+DUt[:,2]) + Psix:DUx は
    adjoint_weights(Psi, Psix) @ flatten_state(DUt, DUx) に等しい。
    """
    Psi = np.asarray(Psi)
    return flatten_state(np.repeat(Psi[:, None], NUM_TIME_DERIVS, axis=1), Psix)


def make_pairs(entries: Iterable[tuple[int, int]]) -> np.ndarray:
    """非ゼロ (row, col) の組を重複なし・行優先で並べた (nnz, 2) 整数配列."""
    pairs = sorted(set((int(r), int(c)) for r, c in entries))
    arr = np.array(pairs, dtype=np.int64).reshape(-1, 2)
    arr.setflags(write=False)
    return arr


def pairs_mask(pairs: np.ndarray, size: int) -> np.ndarray:
    """非ゼロパターンの bool マスク (size, size)."""
    mask = np.zeros((size, size), dtype=bool)
    mask[pairs[:, 0], pairs[:, 1]] = True
    return mask
