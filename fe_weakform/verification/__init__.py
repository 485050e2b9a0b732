"""物理モデル・構成則の解析微分を差分（中心差分 / 複素ステップ）で検証する.

  VerificationConfig   : ステップ・許容誤差・出力レベル
  ElementModelTester   : Jacobian・随伴積・ひずみ・点量の感度
  ConstitutiveTester   : 応力の一貫性・破損指標と応力の感度
"""

from fe_weakform.verification.constitutive import ConstitutiveTester
from fe_weakform.verification.core import (
    VerificationConfig,
    VerificationResult,
    compare_values,
    directional_derivative,
    gradient,
)
from fe_weakform.verification.element_model import ElementModelTester

__all__ = [
    "VerificationConfig",
    "VerificationResult",
    "ElementModelTester",
    "ConstitutiveTester",
    "compare_values",
    "directional_derivative",
    "gradient",
]
