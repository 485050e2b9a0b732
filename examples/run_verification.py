#!/usr/bin/env python3
"""fe-weakform 物理モデルの差分検証スクリプト.

各物理モデルについて Jacobian・随伴設計感度・ひずみ感度・点量感度を
差分（中心差分または複素ステップ）で検証し、結果を表示する。

Usage:
    python examples/run_verification.py                  # 全モデル
    python examples/run_verification.py elasticity       # 3D 線形弾性のみ
    python examples/run_verification.py heat             # 3D 熱伝導のみ
    python examples/run_verification.py thermo           # 3D 熱弾性のみ
    python examples/run_verification.py bar              # 1D von Kármán バーのみ
    FE_WEAKFORM_SCALAR=complex python examples/run_verification.py   # 複素ステップ
"""

from __future__ import annotations

import sys
from pathlib import Path

# プロジェクトルートを PYTHONPATH に追加
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from fe_weakform.config import SCALAR_MODE
from fe_weakform.materials.properties import MaterialProperties
from fe_weakform.materials.solid import SolidConstitutive
from fe_weakform.models.bar1d import VonKarmanBar1D
from fe_weakform.models.elasticity import LinearElasticity3D
from fe_weakform.models.heat import HeatConduction3D
from fe_weakform.models.thermoelasticity import LinearThermoelasticity3D
from fe_weakform.verification import ConstitutiveTester, ElementModelTester, VerificationConfig


def _solid(t_num: int = 0) -> SolidConstitutive:
    props = MaterialProperties.orthotropic(
        1.5, 40.0, 20.0, 10.0, 0.3, 0.25, 0.2, 6.0, 7.0, 8.0,
        specific_heat=2.0, alpha=(0.01, 0.02, 0.03), kappa=(1.0, 0.5, 0.25), ys=5.0,
    )
    return SolidConstitutive(props, t=1.3, t_num=t_num, t_lb=0.1, t_ub=5.0)


def main():
    """メイン実行."""
    print("=" * 60)
    print(f"fe-weakform 差分検証（スカラー型: {SCALAR_MODE}）")
    print("=" * 60)
    print()

    filter_key = sys.argv[1].lower() if len(sys.argv) > 1 else None
    config = VerificationConfig(print_level=1)

    models = {
        "elasticity": lambda: LinearElasticity3D(_solid()),
        "heat": lambda: HeatConduction3D(_solid()),
        "thermoelasticity": lambda: LinearThermoelasticity3D(_solid()),
        "bar": lambda: VonKarmanBar1D(2.0, 30.0, 0.5, a_num=0),
    }

    summary = []
    if filter_key is None:
        results = ConstitutiveTester(_solid(), config=config).run_all()
        summary.append(("SolidConstitutive", results))
        print()

    for name, factory in models.items():
        if filter_key is None or filter_key in name:
            results = ElementModelTester(factory(), config=config).run_all()
            summary.append((name, results))
            print()

    print("-" * 60)
    print("検証まとめ:")
    n_fail = 0
    for name, results in summary:
        failed = [r.label for r in results if not r]
        skipped = sum(r.skipped for r in results)
        n_fail += len(failed)
        status = "PASS" if not failed else "FAIL " + ", ".join(failed)
        print(f"  {name}: {len(results)} tests, {skipped} skipped [{status}]")
    print()
    return 1 if n_fail else 0


if __name__ == "__main__":
    sys.exit(main())
