"""fe_weakform.core - 物理モデル・構成則の抽象インタフェース定義・戻り値型.

Protocol 階層:
  DesignVarProtocol       : 設計変数の取得・設定
  ConstitutiveProtocol    : 3D 固体構成則（応力・接線・熱・破損と設計感度）
  ElementModelProtocol    : 弱形式係数・Jacobian・随伴積・点量
  StrainModelProtocol     : + ひずみの状態変数感度
"""

from fe_weakform.core.constitutive import ConstitutiveProtocol, DesignVarProtocol
from fe_weakform.core.model import (
    ConstitutiveModelBase,
    ElementModelBase,
    ElementModelProtocol,
    StrainModelProtocol,
)
from fe_weakform.core.results import (
    AdjXptSensProduct,
    PointQuantity,
    QuantitySens,
    StrainSVSens,
    WeakForm,
    WeakJacobian,
)
from fe_weakform.core.types import ElementType, OutputFlag, QuantityType

__all__ = [
    "DesignVarProtocol",
    "ConstitutiveProtocol",
    "ElementModelProtocol",
    "StrainModelProtocol",
    "ElementModelBase",
    "ConstitutiveModelBase",
    "WeakForm",
    "WeakJacobian",
    "PointQuantity",
    "QuantitySens",
    "StrainSVSens",
    "AdjXptSensProduct",
    "QuantityType",
    "ElementType",
    "OutputFlag",
]
