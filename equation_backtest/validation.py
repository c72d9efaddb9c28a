"""
Equation Validation

Produces a user-facing report for one equation instead of raising, so an
editor can show every problem, the indicators in use and spelling hints.
"""
import difflib
import re
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from equation_backtest.errors import GrammarError
from equation_backtest.parser import BinaryOp, Expression, Not, compile_expression
from equation_backtest.tokenizer import normalize_equation
from equation_backtest.variables import PRICE_FIELDS, VOCABULARY

_WORD = re.compile(r"[A-Z_][A-Z0-9_]*")
_BOOLEAN_OPS = {">", "<", ">=", "<=", "==", "!=", "&&", "||"}


class ValidationReport(BaseModel):
    """Result of validating one equation"""
    equation: str = Field(description="Equation as submitted")
    is_valid: bool = Field(default=True, description="Whether the equation compiles")
    errors: List[str] = Field(default_factory=list, description="Problems that reject the equation")
    warnings: List[str] = Field(default_factory=list, description="Likely mistakes that still compile")
    indicators: List[str] = Field(default_factory=list, description="Indicator references, e.g. SMA(20)")
    variables: List[str] = Field(default_factory=list, description="Price fields referenced")
    suggestions: List[str] = Field(default_factory=list, description="Spelling hints for unknown words")


def _unknown_words(normalized: str) -> List[str]:
    seen: List[str] = []
    for word in _WORD.findall(normalized):
        if word not in VOCABULARY and word not in seen:
            seen.append(word)
    return seen


def _suggest(word: str) -> Optional[str]:
    matches = difflib.get_close_matches(word, sorted(VOCABULARY), n=3, cutoff=0.6)
    if not matches:
        return None
    return f"Unknown \"{word}\". Did you mean: {', '.join(matches)}?"


def validate_equation(equation: str) -> ValidationReport:
    """
    Validate an equation against the fixed grammar

    Args:
        equation: Equation text as typed by the user

    Returns:
        ValidationReport; never raises for bad input
    """
    report = ValidationReport(equation=equation or "")

    if not equation or not equation.strip():
        report.is_valid = False
        report.errors.append("Equation cannot be empty")
        return report

    normalized = normalize_equation(equation.strip())

    unknown = _unknown_words(normalized)
    for word in unknown:
        report.errors.append(f"unknown identifier '{word}'")
        hint = _suggest(word)
        if hint:
            report.suggestions.append(hint)

    expression: Optional[Expression] = None
    if not unknown:
        try:
            expression = compile_expression(equation)
        except GrammarError as e:
            report.errors.append(str(e))

    if report.errors:
        report.is_valid = False
        logger.debug(f"Equation rejected: {equation!r} -> {report.errors}")
        return report

    refs = sorted(expression.references)
    report.variables = [name for name in PRICE_FIELDS if any(r.name == name for r in refs)]
    report.indicators = [str(r) for r in refs if not r.is_price_field]

    if any(r.name == "RSI" for r in refs) and not ("<" in normalized or ">" in normalized):
        report.warnings.append(
            "RSI is typically used with comparison operators (< 30 for oversold, > 70 for overbought)"
        )
    if not refs:
        report.warnings.append("No indicators or price variables detected in the equation")
    root = expression.root
    is_boolean = isinstance(root, Not) or (isinstance(root, BinaryOp) and root.op in _BOOLEAN_OPS)
    if refs and not is_boolean:
        report.warnings.append(
            "Equation has no comparison; any non-zero value will count as true"
        )

    return report
