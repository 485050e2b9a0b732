"""検証ハーネスの共通データ構造と差分ユーティリティ.

検証の流れ: 構成 → 摂動 → 比較 → 報告。テスト間で状態は持たない。

比較規則（成分ごと）:
  |a − f| <= atol  または  |a − f| <= rtol·|f|  なら合格
"""

from __future__ import annotations

import zlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from fe_weakform.config import default_fd_settings, is_complex_mode


@dataclass
class VerificationConfig:
    """差分検証の設定.

    None のフィールドは complex_step に応じた既定値（fe_weakform.config）で埋める。

    Attributes:
        dh: 摂動ステップ
        rtol: 相対許容誤差
        atol: 絶対許容誤差
        print_level: 0=出力なし, 1=テストごとの要約, 2=不一致成分の詳細
        seed: 乱数状態・摂動方向の生成に用いるシード
        complex_step: True で複素ステップ微分。None はグローバル構成に従う。
    """

    dh: float | None = None
    rtol: float | None = None
    atol: float | None = None
    print_level: int = 0
    seed: int = 0
    complex_step: bool | None = None

    def __post_init__(self) -> None:
        if self.complex_step is None:
            self.complex_step = is_complex_mode()
        defaults = default_fd_settings(self.complex_step)
        if self.dh is None:
            self.dh = defaults.dh
        if self.rtol is None:
            self.rtol = defaults.rtol
        if self.atol is None:
            self.atol = defaults.atol
        if self.dh <= 0.0:
            raise ValueError(f"dh は正: {self.dh}")
        if self.rtol < 0.0 or self.atol < 0.0:
            raise ValueError(f"許容誤差は非負: rtol={self.rtol}, atol={self.atol}")
        if self.print_level < 0:
            raise ValueError(f"print_level は非負: {self.print_level}")


class VerificationResult(NamedTuple):
    """1 テストの結果.

    真偽値は passed に等しい。

    Attributes:
        passed: 合否
        max_abs_err: 最大絶対誤差
        max_rel_err: 最大相対誤差（参照値がゼロの成分を除く）
        label: テスト名
        skipped: モデルが該当機能を持たず検証を省略した
    """

    passed: bool
    max_abs_err: float
    max_rel_err: float
    label: str
    skipped: bool = False

    def __bool__(self) -> bool:
        return bool(self.passed)


def perturbation_rng(seed: int, label: str) -> np.random.Generator:
    """テストごとの乱数生成器.

    (seed, label) だけで決まるため、同じテストは呼び出し順や回数によらず同じ摂動を使う。
    """
    return np.random.default_rng([seed, zlib.crc32(label.encode())])


def skipped_result(label: str, reason: str, print_level: int = 0) -> VerificationResult:
    """検証対象が存在しない場合の結果（合格扱い）."""
    if print_level >= 1:
        print(f"  [{label}] SKIP ({reason})")
    return VerificationResult(True, 0.0, 0.0, label, skipped=True)


def merge_results(label: str, results: list[VerificationResult]) -> VerificationResult:
    """複数の部分検証を 1 つにまとめる."""
    checked = [r for r in results if not r.skipped]
    if not checked:
        return VerificationResult(True, 0.0, 0.0, label, skipped=True)
    return VerificationResult(
        passed=all(r.passed for r in checked),
        max_abs_err=max(r.max_abs_err for r in checked),
        max_rel_err=max(r.max_rel_err for r in checked),
        label=label,
    )


def compare_values(
    analytic,
    reference,
    config: VerificationConfig,
    label: str,
    names: list[str] | None = None,
) -> VerificationResult:
    """解析値と差分値を成分ごとに比較する.

    Args:
        analytic: 解析値（任意形状）
        reference: 差分値（analytic と同形状）
        config: 許容誤差と出力レベル
        label: 報告用のテスト名
        names: 成分ごとの表示名（print_level >= 2 で使用）
    """
    a = np.ravel(np.asarray(analytic))
    f = np.ravel(np.asarray(reference))
    err = np.abs(a - f)
    mag = np.abs(f)
    ok = (err <= config.atol) | (err <= config.rtol * mag)

    max_abs = float(err.max()) if err.size else 0.0
    nz = mag > 0.0
    max_rel = float((err[nz] / mag[nz]).max()) if np.any(nz) else 0.0
    result = VerificationResult(bool(np.all(ok)), max_abs, max_rel, label)

    if config.print_level >= 1:
        status = "PASS" if result.passed else "FAIL"
        print(
            f"  [{label}] {status}  max_abs_err={max_abs:.3e}"
            f"  max_rel_err={max_rel:.3e}  (n={a.size})"
        )
    if config.print_level >= 2:
        for i in np.flatnonzero(~ok):
            name = names[i] if names is not None else str(i)
            rel = err[i] / mag[i] if mag[i] > 0.0 else np.inf
            print(
                f"    {name}: analytic={np.real(a[i]):+.10e}"
                f"  fd={np.real(f[i]):+.10e}  rel_err={rel:.3e}"
            )
    return result


def directional_derivative(
    func: Callable[[np.ndarray], np.ndarray],
    x0: np.ndarray,
    direction: np.ndarray,
    config: VerificationConfig,
) -> np.ndarray:
    """func の x0 における direction 方向の微分を差分で近似する.

    実数モード: 中心差分 (f(x+h p) − f(x−h p)) / 2h
    複素ステップ: Im f(x + i h p) / h
    """
    h = config.dh
    x0 = np.asarray(x0, dtype=float)
    direction = np.asarray(direction, dtype=float)
    if config.complex_step:
        fx = np.asarray(func(x0 + 1j * h * direction))
        return np.imag(fx) / h
    fp = np.asarray(func(x0 + h * direction))
    fm = np.asarray(func(x0 - h * direction))
    return np.real(fp - fm) / (2.0 * h)


def gradient(
    func: Callable[[np.ndarray], object],
    x0: np.ndarray,
    config: VerificationConfig,
) -> np.ndarray:
    """スカラー関数の勾配を成分ごとの差分で近似する."""
    x0 = np.asarray(x0, dtype=float)
    grad = np.zeros(x0.size)
    for k in range(x0.size):
        p = np.zeros(x0.size)
        p[k] = 1.0
        grad[k] = directional_derivative(func, x0, p, config)
    return grad
