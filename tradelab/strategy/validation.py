"""
Structured validation results for strategy descriptions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class IssueCode:
    """Stable machine-readable issue codes."""
    # errors
    MISSING_NAME = 'MISSING_NAME'
    MISSING_PARAMETERS = 'MISSING_PARAMETERS'
    MISSING_SYMBOL = 'MISSING_SYMBOL'
    INVALID_POSITION_SIZE = 'INVALID_POSITION_SIZE'
    NO_INDICATORS = 'NO_INDICATORS'
    DUPLICATE_INDICATOR = 'DUPLICATE_INDICATOR'
    UNSUPPORTED_INDICATOR = 'UNSUPPORTED_INDICATOR'
    INVALID_INDICATOR = 'INVALID_INDICATOR'
    MISSING_SIGNALS = 'MISSING_SIGNALS'
    UNKNOWN_PARAMETER = 'UNKNOWN_PARAMETER'
    CONDITION_SYNTAX = 'CONDITION_SYNTAX'
    UNDEFINED_REFERENCE = 'UNDEFINED_REFERENCE'
    INVALID_SIGNAL_SIZE = 'INVALID_SIGNAL_SIZE'
    INVALID_RISK_PARAMETER = 'INVALID_RISK_PARAMETER'
    INVALID_PRIORITY = 'INVALID_PRIORITY'
    # warnings
    UNUSED_INDICATOR = 'UNUSED_INDICATOR'
    NO_SELL_CONDITIONS = 'NO_SELL_CONDITIONS'
    NO_STOP_LOSS = 'NO_STOP_LOSS'


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    field: str = ''
    severity: str = 'ERROR'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'field': self.field,
            'severity': self.severity,
        }


@dataclass
class ValidationResult:
    """Outcome of StrategyCompiler.validate_strategy."""
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, code: str, message: str, field_name: str = '') -> None:
        self.errors.append(ValidationIssue(code, message, field_name, 'ERROR'))

    def warning(self, code: str, message: str, field_name: str = '') -> None:
        self.warnings.append(ValidationIssue(code, message, field_name, 'WARNING'))

    def codes(self) -> List[str]:
        return [issue.code for issue in self.errors + self.warnings]

    def first(self, code: str) -> Optional[ValidationIssue]:
        for issue in self.errors + self.warnings:
            if issue.code == code:
                return issue
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
        }
