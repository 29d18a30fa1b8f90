"""Time expression language for composition timing attributes.

Timing attributes (start, end, duration, pause seconds, poster, ...) hold
small arithmetic formulas rather than plain numbers:

    start="2s"                      # literal seconds
    start="48f"                     # frames, divided by the fps
    start="prev.end + 500ms"        # relative to the previous scene
    end="scene(outro).start - 1"    # forward reference to another scene
    start="snap(cue(hook) + 0.2, 1f)"

Grammar, lowest to highest precedence:

    expr    := term (('+' | '-') term)*
    term    := unary (('*' | '/') unary)*
    unary   := ('+' | '-') unary | primary
    primary := NUMBER UNIT? | IDENT ('(' args ')')? ('.' IDENT)* | '(' expr ')'

A unit-less number is already seconds. Parsing yields an immutable AST
that is cached per source string; evaluation is pure arithmetic over a
ResolutionContext. A lookup of a scene, cue or sibling that has not been
resolved yet raises UnresolvedReference, which the resolver catches to
retry the scene on a later pass. Everything else that is wrong with an
expression raises TimeExpressionError.
"""

import math
from dataclasses import dataclass, field
from functools import lru_cache


class TimeExpressionError(ValueError):
    """Malformed expression, unknown name, wrong arity, bad arithmetic."""


class UnresolvedReference(Exception):
    """The expression depends on a time that is not resolved yet.

    Not an error by itself: the resolver treats it as "try again later".
    """

    def __init__(self, reference: str):
        super().__init__(reference)
        self.reference = reference


# ── AST ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Number:
    value: float
    unit: str | None = None


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple["Node", ...]


@dataclass(frozen=True)
class Property:
    target: "Node"
    name: str


Node = Number | Identifier | Unary | Binary | Call | Property

UNITS = ("ms", "f", "s")


# ── Resolution context ─────────────────────────────────────────────

@dataclass(frozen=True)
class ResolutionContext:
    """Named time lookups available while evaluating one expression.

    The maps hold only times that are already resolved. Every lookup
    returns None for an unknown referent.
    """

    fps: float = 30
    scene_starts: dict[str, float] = field(default_factory=dict)
    scene_ends: dict[str, float] = field(default_factory=dict)
    cue_starts: dict[str, float] = field(default_factory=dict)
    prev_start: float | None = None
    prev_end: float | None = None
    next_start: float | None = None

    def scene_start(self, scene_id: str) -> float | None:
        return self.scene_starts.get(scene_id)

    def scene_end(self, scene_id: str) -> float | None:
        return self.scene_ends.get(scene_id)

    def cue_start(self, cue_id: str) -> float | None:
        return self.cue_starts.get(cue_id)


# ── Tokenizer ──────────────────────────────────────────────────────

def _is_ident_start(ch: str) -> bool:
    return ch.isascii() and (ch.isalpha() or ch == "_")


def _is_ident_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch == "_")


def tokenize(text: str) -> list[tuple[str, object]]:
    """Split an expression into (kind, value) tokens.

    Kinds: "number" (value is (float, unit)), "ident", "op", "paren",
    "dot", "comma".
    """
    tokens = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch in "+-*/":
            tokens.append(("op", ch))
            i += 1
            continue
        if ch in "()":
            tokens.append(("paren", ch))
            i += 1
            continue
        if ch == ",":
            tokens.append(("comma", ch))
            i += 1
            continue
        # ".5" is a number unless it follows something a property can hang off.
        leading_dot = (
            ch == "."
            and i + 1 < n
            and text[i + 1].isdigit()
            and not (tokens and (tokens[-1][0] == "ident" or tokens[-1] == ("paren", ")")))
        )
        if ch == ".":
            if not leading_dot:
                tokens.append(("dot", ch))
                i += 1
                continue
        if ch.isdigit() or leading_dot:
            j = i + 1
            while j < n and (text[j].isdigit() or text[j] == "."):
                j += 1
            raw = text[i:j]
            try:
                value = float(raw)
            except ValueError:
                raise TimeExpressionError(f"Invalid number '{raw}'") from None
            unit = None
            for candidate in UNITS:
                if text.startswith(candidate, j):
                    end = j + len(candidate)
                    # "5sec" is not "5s" followed by "ec".
                    if end < n and _is_ident_char(text[end]):
                        continue
                    unit = candidate
                    j = end
                    break
            if j < n and _is_ident_start(text[j]):
                raise TimeExpressionError(
                    f"Unknown unit '{text[j:].split()[0]}' after '{raw}'"
                )
            tokens.append(("number", (value, unit)))
            i = j
            continue
        if _is_ident_start(ch):
            j = i + 1
            while j < n:
                if _is_ident_char(text[j]):
                    j += 1
                elif text[j] == "-" and j + 1 < n and _is_ident_start(text[j + 1]):
                    j += 1
                else:
                    break
            tokens.append(("ident", text[i:j]))
            i = j
            continue
        raise TimeExpressionError(f"Unexpected character '{ch}'")
    return tokens


# ── Parser ─────────────────────────────────────────────────────────

class _Parser:
    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0

    def peek(self):
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def consume(self):
        token = self.peek()
        if token is None:
            raise TimeExpressionError("Unexpected end of expression")
        self.pos += 1
        return token

    def expect_close(self):
        token = self.peek()
        if token != ("paren", ")"):
            raise TimeExpressionError("Expected closing ')'")
        self.pos += 1

    def parse(self) -> Node:
        node = self.expression()
        if self.pos < len(self.tokens):
            kind, value = self.tokens[self.pos]
            raise TimeExpressionError(f"Unexpected token '{value}'")
        return node

    def expression(self) -> Node:
        node = self.term()
        while self.peek() in (("op", "+"), ("op", "-")):
            op = self.consume()[1]
            node = Binary(op, node, self.term())
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.peek() in (("op", "*"), ("op", "/")):
            op = self.consume()[1]
            node = Binary(op, node, self.unary())
        return node

    def unary(self) -> Node:
        if self.peek() in (("op", "+"), ("op", "-")):
            op = self.consume()[1]
            return Unary(op, self.unary())
        return self.primary()

    def primary(self) -> Node:
        kind, value = self.consume()
        if kind == "number":
            number, unit = value
            return Number(number, unit)
        if kind == "paren" and value == "(":
            node = self.expression()
            self.expect_close()
            return node
        if kind != "ident":
            raise TimeExpressionError(f"Unexpected token '{value}'")

        node = Identifier(value)
        if self.peek() == ("paren", "("):
            self.consume()
            args = []
            if self.peek() != ("paren", ")"):
                while True:
                    args.append(self.expression())
                    if self.peek() == ("comma", ","):
                        self.consume()
                        continue
                    break
            self.expect_close()
            node = Call(value, tuple(args))
        while self.peek() == ("dot", "."):
            self.consume()
            token = self.peek()
            if token is None or token[0] != "ident":
                raise TimeExpressionError("Expected property name after '.'")
            self.consume()
            node = Property(node, token[1])
        return node


@lru_cache(maxsize=1024)
def parse_time_expression(text: str) -> Node:
    """Parse a time expression string into an AST.

    Results are cached per source string, so an attribute is parsed once
    no matter how many resolver passes evaluate it.

    Raises:
        TimeExpressionError: Syntax error, naming the expression.
    """
    source = text.strip()
    if not source:
        raise TimeExpressionError("Empty time expression")
    try:
        return _Parser(tokenize(source)).parse()
    except TimeExpressionError as exc:
        raise TimeExpressionError(f"{exc} in time expression '{source}'") from None


# ── Evaluation ─────────────────────────────────────────────────────

def _reference_id(call: Call) -> str:
    if len(call.args) != 1 or not isinstance(call.args[0], Identifier):
        raise TimeExpressionError(f"{call.name}() requires an identifier argument")
    return call.args[0].name


def _lookup(value: float | None, reference: str) -> float:
    if value is None:
        raise UnresolvedReference(reference)
    return value


def _evaluate_call(node: Call, ctx: ResolutionContext) -> float:
    name = node.name
    if name in ("min", "max"):
        if len(node.args) < 2:
            raise TimeExpressionError(f"{name}() requires at least 2 arguments")
        values = [evaluate(arg, ctx) for arg in node.args]
        return min(values) if name == "min" else max(values)
    if name == "clamp":
        if len(node.args) != 3:
            raise TimeExpressionError("clamp() requires 3 arguments")
        value, lo, hi = (evaluate(arg, ctx) for arg in node.args)
        return min(hi, max(lo, value))
    if name == "snap":
        if len(node.args) != 2:
            raise TimeExpressionError("snap() requires 2 arguments")
        value = evaluate(node.args[0], ctx)
        grid = evaluate(node.args[1], ctx)
        if grid == 0:
            return value
        return math.floor(value / grid + 0.5) * grid
    if name == "scene":
        scene_id = _reference_id(node)
        return _lookup(ctx.scene_start(scene_id), f"scene({scene_id})")
    if name == "cue":
        cue_id = _reference_id(node)
        return _lookup(ctx.cue_start(cue_id), f"cue({cue_id})")
    raise TimeExpressionError(f"Unknown function '{name}'")


def _evaluate_property(node: Property, ctx: ResolutionContext) -> float:
    target, prop = node.target, node.name
    if isinstance(target, Identifier):
        if target.name == "prev" and prop == "start":
            return _lookup(ctx.prev_start, "prev.start")
        if target.name == "prev" and prop == "end":
            return _lookup(ctx.prev_end, "prev.end")
        if target.name == "next" and prop == "start":
            return _lookup(ctx.next_start, "next.start")
        if target.name == "timeline" and prop == "start":
            return 0.0
    if isinstance(target, Call) and target.name == "scene":
        scene_id = _reference_id(target)
        if prop == "start":
            return _lookup(ctx.scene_start(scene_id), f"scene({scene_id}).start")
        if prop == "end":
            return _lookup(ctx.scene_end(scene_id), f"scene({scene_id}).end")
    if isinstance(target, Call) and target.name == "cue" and prop == "start":
        cue_id = _reference_id(target)
        return _lookup(ctx.cue_start(cue_id), f"cue({cue_id}).start")
    raise TimeExpressionError(f"Unsupported property access '.{prop}'")


def evaluate(node: Node, ctx: ResolutionContext) -> float:
    """Evaluate a parsed expression to seconds.

    Raises:
        UnresolvedReference: A referenced time is not resolved yet.
        TimeExpressionError: Unknown identifier/function, bad arity,
            division by zero.
    """
    if isinstance(node, Number):
        if node.unit == "f":
            return node.value / ctx.fps
        if node.unit == "ms":
            return node.value / 1000
        return node.value
    if isinstance(node, Identifier):
        if node.name == "timeline":
            raise TimeExpressionError(
                "timeline requires a property (e.g. timeline.start)"
            )
        raise TimeExpressionError(f"Unknown identifier '{node.name}'")
    if isinstance(node, Unary):
        value = evaluate(node.operand, ctx)
        return -value if node.op == "-" else value
    if isinstance(node, Binary):
        left = evaluate(node.left, ctx)
        right = evaluate(node.right, ctx)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if right == 0:
            raise TimeExpressionError("Division by zero")
        return left / right
    if isinstance(node, Call):
        return _evaluate_call(node, ctx)
    return _evaluate_property(node, ctx)


def evaluate_time(text: str, ctx: ResolutionContext) -> float:
    """Parse (cached) and evaluate a time expression string.

    Raises:
        UnresolvedReference: See evaluate().
        TimeExpressionError: With the offending expression in the message.
    """
    node = parse_time_expression(text)
    try:
        return evaluate(node, ctx)
    except TimeExpressionError as exc:
        raise TimeExpressionError(
            f"{exc} in time expression '{text.strip()}'"
        ) from None


def is_anchored(node: Node) -> bool:
    """True if the expression refers to an absolute point on the timeline.

    Anchored expressions mention scene(), cue(), prev, next or timeline;
    they evaluate to absolute times. Everything else is a plain duration
    or offset.
    """
    if isinstance(node, Number):
        return False
    if isinstance(node, Identifier):
        return node.name in ("prev", "next", "timeline")
    if isinstance(node, Unary):
        return is_anchored(node.operand)
    if isinstance(node, Binary):
        return is_anchored(node.left) or is_anchored(node.right)
    if isinstance(node, Call):
        if node.name in ("scene", "cue"):
            return True
        return any(is_anchored(arg) for arg in node.args)
    return is_anchored(node.target)
