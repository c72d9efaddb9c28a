"""
Equation Parser and Evaluator

Recursive-descent parser that compiles an equation into a typed AST once,
and an interpreter that evaluates the AST against a VariableTable per bar.

Precedence, lowest to highest:
    OR -> AND -> comparison -> add/sub -> mul/div -> NOT -> primary

Usage:
    expression = compile_expression("CLOSE > SMA(20) AND RSI(14) < 70")
    expression.holds(table)  # fail-closed boolean for one bar
"""
from collections import Counter
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Union

from loguru import logger

from equation_backtest.errors import EvalError, ParseError
from equation_backtest.tokenizer import Token, TokenType, normalize_equation, tokenize
from equation_backtest.variables import DEFAULT_PERIOD, FUNCTION_ARITY, IndicatorRef, VariableTable

MAX_TOKENS = 512
MAX_NESTING = 32

Value = Union[float, bool]


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    ref: IndicatorRef


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, Variable, Not, BinaryOp]


class _Parser:
    """Single-use recursive-descent parser over one token list"""

    def __init__(self, tokens: List[Token], expr: str):
        self.tokens = tokens
        self.expr = expr
        self.pos = 0
        self.depth = 0

    def peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def consume(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def error(self, reason: str, token: Optional[Token] = None) -> ParseError:
        position = token.position if token is not None else len(self.expr)
        return ParseError(reason, self.expr, position)

    def at(self, token_type: TokenType, *values: str) -> bool:
        token = self.peek()
        if token is None or token.type is not token_type:
            return False
        return not values or token.value in values

    def nest(self, token: Token) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise self.error("expression nested too deeply", token)

    def parse(self) -> Node:
        if not self.tokens:
            raise self.error("equation cannot be empty")
        if len(self.tokens) > MAX_TOKENS:
            raise self.error(f"equation longer than {MAX_TOKENS} tokens")

        node = self.parse_or()

        token = self.peek()
        if token is not None:
            if token.type is TokenType.RPAREN:
                raise self.error("unbalanced parentheses: unexpected ')'", token)
            raise self.error(f"unexpected token '{self._show(token)}'", token)
        return node

    def parse_or(self) -> Node:
        left = self.parse_and()
        while self.at(TokenType.LOGICAL, "||"):
            self.consume()
            left = BinaryOp("||", left, self.parse_and())
        return left

    def parse_and(self) -> Node:
        left = self.parse_comparison()
        while self.at(TokenType.LOGICAL, "&&"):
            self.consume()
            left = BinaryOp("&&", left, self.parse_comparison())
        return left

    def parse_comparison(self) -> Node:
        left = self.parse_add_sub()
        while self.at(TokenType.COMPARISON):
            op = self.consume().value
            left = BinaryOp(op, left, self.parse_add_sub())
        return left

    def parse_add_sub(self) -> Node:
        left = self.parse_mul_div()
        while self.at(TokenType.OPERATOR, "+", "-"):
            op = self.consume().value
            left = BinaryOp(op, left, self.parse_mul_div())
        return left

    def parse_mul_div(self) -> Node:
        left = self.parse_unary()
        while self.at(TokenType.OPERATOR, "*", "/"):
            op = self.consume().value
            left = BinaryOp(op, left, self.parse_unary())
        return left

    def parse_unary(self) -> Node:
        if self.at(TokenType.NOT):
            token = self.consume()
            self.nest(token)
            operand = self.parse_unary()
            self.depth -= 1
            return Not(operand)
        return self.parse_primary()

    def parse_primary(self) -> Node:
        token = self.peek()
        if token is None:
            raise self.error("unexpected end of equation")

        if token.type is TokenType.NUMBER:
            self.consume()
            return Number(float(token.value))

        if token.type is TokenType.IDENTIFIER:
            self.consume()
            if token.value in FUNCTION_ARITY:
                return Variable(self.parse_call(token))
            return Variable(IndicatorRef(token.value))

        if token.type is TokenType.LPAREN:
            self.consume()
            self.nest(token)
            node = self.parse_or()
            if not self.at(TokenType.RPAREN):
                raise self.error("unbalanced parentheses: missing ')'", self.peek())
            self.consume()
            self.depth -= 1
            return node

        if token.type is TokenType.RPAREN:
            raise self.error("unbalanced parentheses: unexpected ')'", token)
        raise self.error(f"unexpected token '{self._show(token)}'", token)

    def parse_call(self, name: Token) -> IndicatorRef:
        """Parse an indicator function name and its optional period list"""
        minimum, maximum = FUNCTION_ARITY[name.value]
        periods = self.parse_arguments(name, maximum) if self.at(TokenType.LPAREN) else []
        if len(periods) < minimum:
            raise self.error(f"{name.value} requires a period, e.g. {name.value}(14)", name)

        if name.value == "STOCHASTIC":
            # %D and smoothing periods are accepted but STOCHASTIC always reads %K
            k_period = periods[0] if periods else DEFAULT_PERIOD
            return IndicatorRef("STOCH_K", None if k_period == DEFAULT_PERIOD else k_period)
        return IndicatorRef(name.value, periods[0] if periods else DEFAULT_PERIOD)

    def parse_arguments(self, name: Token, maximum: int) -> List[int]:
        """Parse `(n, ...)` after a function name; `()` yields no periods"""
        self.consume()
        periods: List[int] = []
        if self.at(TokenType.RPAREN):
            self.consume()
            return periods

        while True:
            token = self.peek()
            if token is None or token.type is not TokenType.NUMBER:
                raise self.error(f"{name.value} requires a numeric period", token)
            self.consume()
            period = float(token.value)
            if period < 1 or not period.is_integer():
                raise self.error(
                    f"{name.value} period must be a positive integer, got {self._show(token)}",
                    token,
                )
            periods.append(int(period))

            if not self.at(TokenType.COMMA):
                break
            if len(periods) == maximum:
                raise self.error(self._too_many(name.value, maximum), self.peek())
            self.consume()

        if not self.at(TokenType.RPAREN):
            raise self.error("unbalanced parentheses: missing ')'", self.peek())
        self.consume()
        return periods

    @staticmethod
    def _too_many(name: str, maximum: int) -> str:
        if FUNCTION_ARITY[name][0] == maximum:
            return f"{name} takes exactly one parameter"
        if maximum == 1:
            return f"{name} takes at most one parameter"
        return f"{name} takes at most {maximum} parameters"

    @staticmethod
    def _show(token: Token) -> str:
        value = token.value
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)


def _apply(op: str, left: Value, right: Value) -> Value:
    if op == "||":
        return bool(left) or bool(right)
    if op == "&&":
        return bool(left) and bool(right)

    a, b = float(left), float(right)
    if op == ">":
        return a > b
    if op == "<":
        return a < b
    if op == ">=":
        return a >= b
    if op == "<=":
        return a <= b
    if op == "==":
        return a == b
    if op == "!=":
        return a != b
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if op == "/":
        if b == 0:
            raise EvalError("division by zero")
        return a / b
    raise EvalError(f"unknown operator '{op}'")


def evaluate(node: Node, table: VariableTable) -> Optional[Value]:
    """
    Evaluate an AST node against one bar's variables

    Both operands of every operator are evaluated; an undefined value
    anywhere makes the whole result None.

    Raises:
        EvalError: On division by zero
    """
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Variable):
        return table.get(node.ref)
    if isinstance(node, Not):
        operand = evaluate(node.operand, table)
        return None if operand is None else not operand

    left = evaluate(node.left, table)
    right = evaluate(node.right, table)
    if left is None or right is None:
        return None
    return _apply(node.op, left, right)


def _collect_refs(node: Node, refs: set) -> None:
    if isinstance(node, Variable):
        refs.add(node.ref)
    elif isinstance(node, Not):
        _collect_refs(node.operand, refs)
    elif isinstance(node, BinaryOp):
        _collect_refs(node.left, refs)
        _collect_refs(node.right, refs)


@dataclass(frozen=True)
class Expression:
    """A compiled equation"""
    source: str
    normalized: str
    root: Node
    references: FrozenSet[IndicatorRef]

    def evaluate(self, table: VariableTable) -> Optional[Value]:
        """Raw value for one bar; None when a referenced value is undefined"""
        return evaluate(self.root, table)

    def holds(self, table: VariableTable, counters: Optional[Counter] = None) -> bool:
        """
        Fail-closed truth value for one bar

        Undefined values (warm-up) and evaluation errors both count as false.
        When `counters` is given, they are tallied under "warmup" and
        "eval_errors".
        """
        try:
            value = self.evaluate(table)
        except EvalError as e:
            if counters is not None:
                counters["eval_errors"] += 1
            logger.debug(f"Evaluation failed for '{self.source}': {e}")
            return False
        if value is None:
            if counters is not None:
                counters["warmup"] += 1
            return False
        return bool(value)


def parse(tokens: List[Token], expr: str = "") -> Node:
    """Build an AST from a token list"""
    return _Parser(tokens, expr).parse()


def compile_expression(equation: str) -> Expression:
    """
    Compile an equation string into an Expression

    Args:
        equation: Equation in the fixed grammar, any case

    Returns:
        Compiled expression, reusable across bars

    Raises:
        TokenizeError: On characters or words outside the alphabet
        ParseError: On token sequences outside the grammar
    """
    normalized = normalize_equation(equation or "")
    root = parse(tokenize(normalized), normalized)
    refs: set = set()
    _collect_refs(root, refs)
    return Expression(
        source=equation,
        normalized=normalized,
        root=root,
        references=frozenset(refs),
    )
