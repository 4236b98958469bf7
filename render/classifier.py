"""
Failure classifier - labels a render failure as a defect in the generated
code or as a fault of the render infrastructure.

Keyword heuristic; misclassification is expected and tolerated. A code
defect may be repaired by regenerating code, an infrastructure fault may not.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    CODE_DEFECT = "code_defect"
    INFRASTRUCTURE = "infrastructure_fault"


CODE_DEFECT_SIGNALS = (
    "is not a function",
    "is not defined",
    "cannot read property",
    "cannot read properties",
    "undefined is not",
    "unexpected token",
    "syntaxerror",
    "referenceerror",
    "typeerror",
    "not a valid",
    "expected",
    "uncaught",
)


def classify_failure(message: str) -> FailureKind:
    text = str(message or "").lower()
    if any(signal in text for signal in CODE_DEFECT_SIGNALS):
        return FailureKind.CODE_DEFECT
    return FailureKind.INFRASTRUCTURE
