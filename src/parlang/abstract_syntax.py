import abc
import dataclasses
import typing
from typing import Optional


class AstNode(abc.ABC):
    pass


class Expression(AstNode):
    pass


class Pattern(AstNode):
    pass


class TypeExpression(AstNode):
    pass


### Literals


class Literal(Expression):
    val: typing.Any


@dataclasses.dataclass(frozen=True)
class IntLit(Literal):
    val: int


@dataclasses.dataclass(frozen=True)
class BoolLit(Literal):
    val: bool


@dataclasses.dataclass(frozen=True)
class FloatLit(Literal):
    val: float


@dataclasses.dataclass(frozen=True)
class CharLit(Literal):
    val: str


@dataclasses.dataclass(frozen=True)
class ByteLit(Literal):
    val: int


TRUE = BoolLit(True)
FALSE = BoolLit(False)


### Expressions


@dataclasses.dataclass(frozen=True)
class Var(Expression):
    name: str


Op = typing.Literal["+", "-", "*", "/", "<", "<=", ">", ">=", "==", "!="]
ARITHMETIC_OPS = ("+", "-", "*", "/")
COMPARISON_OPS = ("<", "<=", ">", ">=")
EQUALITY_OPS = ("==", "!=")


@dataclasses.dataclass(frozen=True)
class BinOp(Expression):
    op: Op
    lhs: Expression
    rhs: Expression


@dataclasses.dataclass(frozen=True)
class Conditional(Expression):
    condition: Expression
    consequence: Expression
    alternative: Expression


@dataclasses.dataclass(frozen=True)
class Let(Expression):
    var: str
    val: Expression
    body: Expression
    ann: Optional[TypeExpression] = None


@dataclasses.dataclass(frozen=True)
class Function(Expression):
    var: str
    body: Expression
    ann: Optional[TypeExpression] = None


@dataclasses.dataclass(frozen=True)
class Application(Expression):
    fun: Expression
    arg: Expression


@dataclasses.dataclass(frozen=True)
class Rec(Expression):
    name: str
    body: Expression


@dataclasses.dataclass(frozen=True)
class Load(Expression):
    path: str
    body: Expression


@dataclasses.dataclass(frozen=True)
class Seq(Expression):
    bindings: list[tuple[str, Expression]]
    body: Expression


@dataclasses.dataclass(frozen=True)
class MatchArm(AstNode):
    pattern: Pattern
    body: Expression


@dataclasses.dataclass(frozen=True)
class Match(Expression):
    expr: Expression
    arms: list[MatchArm]


@dataclasses.dataclass(frozen=True)
class Tuple(Expression):
    items: list[Expression]


UNIT = Tuple([])


@dataclasses.dataclass(frozen=True)
class TupleProj(Expression):
    expr: Expression
    index: int


@dataclasses.dataclass(frozen=True)
class Record(Expression):
    fields: list[tuple[str, Expression]]


@dataclasses.dataclass(frozen=True)
class FieldAccess(Expression):
    expr: Expression
    field: str


@dataclasses.dataclass(frozen=True)
class TypeAlias(Expression):
    name: str
    texpr: TypeExpression
    body: Expression


@dataclasses.dataclass(frozen=True)
class TypeDef(Expression):
    name: str
    params: list[str]
    constructors: list[tuple[str, list[TypeExpression]]]
    body: Expression


@dataclasses.dataclass(frozen=True)
class Constructor(Expression):
    name: str
    args: list[Expression]


@dataclasses.dataclass(frozen=True)
class Array(Expression):
    items: list[Expression]


@dataclasses.dataclass(frozen=True)
class ArrayIndex(Expression):
    expr: Expression
    index: Expression


@dataclasses.dataclass(frozen=True)
class Range(Expression):
    start: Expression
    end: Expression


@dataclasses.dataclass(frozen=True)
class NewRef(Expression):
    init: Expression


@dataclasses.dataclass(frozen=True)
class RefGet(Expression):
    ref: Expression


@dataclasses.dataclass(frozen=True)
class RefSet(Expression):
    ref: Expression
    val: Expression


### Patterns


@dataclasses.dataclass(frozen=True)
class WildcardPattern(Pattern):
    pass


@dataclasses.dataclass(frozen=True)
class VarPattern(Pattern):
    name: str


@dataclasses.dataclass(frozen=True)
class LiteralPattern(Pattern):
    lit: Literal


@dataclasses.dataclass(frozen=True)
class TuplePattern(Pattern):
    items: list[Pattern]


@dataclasses.dataclass(frozen=True)
class RecordPattern(Pattern):
    fields: list[tuple[str, Pattern]]


@dataclasses.dataclass(frozen=True)
class ConstructorPattern(Pattern):
    name: str
    args: list[Pattern]


### Type expressions


@dataclasses.dataclass(frozen=True)
class TypeLiteral(TypeExpression):
    name: str


@dataclasses.dataclass(frozen=True)
class FuncType(TypeExpression):
    arg: TypeExpression
    ret: TypeExpression


@dataclasses.dataclass(frozen=True)
class TypeApplication(TypeExpression):
    name: str
    args: list[TypeExpression]


@dataclasses.dataclass(frozen=True)
class TupleType(TypeExpression):
    items: list[TypeExpression]
