"""
Equation Tokenizer

Turns a normalized equation into tokens over a closed alphabet.

The alphabet is enumerated: decimal numbers, the comparison, logical and
arithmetic operators, parentheses, commas and the words of the fixed
vocabulary. Anything else fails the whole equation with a TokenizeError;
there is never a partial result.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Union

from equation_backtest.errors import TokenizeError
from equation_backtest.variables import VOCABULARY


class TokenType(str, Enum):
    """Token categories"""
    NUMBER = "number"
    IDENTIFIER = "identifier"
    COMPARISON = "comparison"
    LOGICAL = "logical"
    OPERATOR = "operator"
    NOT = "not"
    LPAREN = "lparen"
    RPAREN = "rparen"
    COMMA = "comma"


@dataclass(frozen=True)
class Token:
    """A single token and where it starts in the normalized equation"""
    type: TokenType
    value: Union[str, float]
    position: int


TWO_CHAR_OPERATORS = {
    ">=": TokenType.COMPARISON,
    "<=": TokenType.COMPARISON,
    "==": TokenType.COMPARISON,
    "!=": TokenType.COMPARISON,
    "&&": TokenType.LOGICAL,
    "||": TokenType.LOGICAL,
}

SINGLE_CHAR_TOKENS = {
    ">": TokenType.COMPARISON,
    "<": TokenType.COMPARISON,
    "+": TokenType.OPERATOR,
    "-": TokenType.OPERATOR,
    "*": TokenType.OPERATOR,
    "/": TokenType.OPERATOR,
    "!": TokenType.NOT,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
}

_OPERAND_TYPES = (TokenType.NUMBER, TokenType.IDENTIFIER, TokenType.RPAREN)

_NUMBER_CHARS = set("0123456789.")
_VALID_NUMBER = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)$")
_WORD = re.compile(r"[A-Z_][A-Z0-9_]*")

_KEYWORDS = (
    (re.compile(r"\bAND\b"), "&&"),
    (re.compile(r"\bOR\b"), "||"),
    (re.compile(r"\bNOT\b"), "!"),
)


def normalize_equation(equation: str) -> str:
    """Upper-case an equation and fold AND/OR/NOT into &&, ||, !"""
    expr = equation.upper()
    for pattern, symbol in _KEYWORDS:
        expr = pattern.sub(symbol, expr)
    return expr


def _starts_negative_number(expr: str, i: int, tokens: List[Token]) -> bool:
    # "-" is a sign only where an operand cannot precede it
    if expr[i] != "-" or i + 1 >= len(expr) or expr[i + 1] not in _NUMBER_CHARS:
        return False
    return not tokens or tokens[-1].type not in _OPERAND_TYPES


def tokenize(expr: str) -> List[Token]:
    """
    Tokenize a normalized equation

    Args:
        expr: Output of normalize_equation()

    Returns:
        List of tokens in source order

    Raises:
        TokenizeError: On any character, word or literal outside the alphabet
    """
    tokens: List[Token] = []
    i = 0

    while i < len(expr):
        char = expr[i]

        if char.isspace():
            i += 1
            continue

        if char in _NUMBER_CHARS or _starts_negative_number(expr, i, tokens):
            start = i
            i += 1
            while i < len(expr) and expr[i] in _NUMBER_CHARS:
                i += 1
            literal = expr[start:i]
            if not _VALID_NUMBER.match(literal):
                raise TokenizeError(f"malformed number '{literal}'", expr, start)
            tokens.append(Token(TokenType.NUMBER, float(literal), start))
            continue

        word = _WORD.match(expr, i)
        if word:
            name = word.group()
            if name not in VOCABULARY:
                raise TokenizeError(f"unknown identifier '{name}'", expr, i)
            tokens.append(Token(TokenType.IDENTIFIER, name, i))
            i = word.end()
            continue

        pair = expr[i:i + 2]
        if pair in TWO_CHAR_OPERATORS:
            tokens.append(Token(TWO_CHAR_OPERATORS[pair], pair, i))
            i += 2
            continue

        if char in SINGLE_CHAR_TOKENS:
            tokens.append(Token(SINGLE_CHAR_TOKENS[char], char, i))
            i += 1
            continue

        raise TokenizeError(f"unexpected character '{char}'", expr, i)

    return tokens
