import dataclasses
import functools

import pyparsing as pp

from parlang import abstract_syntax as ast


@dataclasses.dataclass
class ParseError(Exception):
    msg: str

    def __str__(self):
        return f"Parse error: {self.msg}"


def parse_program(src: str) -> ast.Expression:
    try:
        return program.parse_string(src, True)[0]
    except pp.ParseBaseException as e:
        raise ParseError(str(e)) from e


def parse_type(src: str) -> ast.TypeExpression:
    try:
        return type_expr.parse_string(src, True)[0]
    except pp.ParseBaseException as e:
        raise ParseError(str(e)) from e


### Lexical elements

S = pp.Suppress


def K(word: str) -> pp.ParserElement:
    return pp.Suppress(pp.Keyword(word))


keyword = pp.MatchFirst(
    map(
        pp.Keyword,
        [
            "let",
            "in",
            "fun",
            "rec",
            "if",
            "then",
            "else",
            "match",
            "with",
            "type",
            "load",
            "ref",
            "true",
            "false",
        ],
    )
)

ident = ~keyword + pp.Regex(r"[a-z_][A-Za-z0-9_']*")
ctor_name = pp.Regex(r"[A-Z][A-Za-z0-9_]*")
wildcard = pp.Regex(r"_(?![A-Za-z0-9_'])")

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", "'": "'"}


def make_char(t):
    body = t[0][1:-1]
    if body.startswith("\\"):
        return ast.CharLit(_ESCAPES.get(body[1], body[1]))
    return ast.CharLit(body)


def make_byte(s, loc, t):
    val = int(t[0][:-1])
    if val > 255:
        raise pp.ParseFatalException(s, loc, f"byte literal {val}b out of range 0..255")
    return ast.ByteLit(val)


float_lit = pp.Regex(r"-?\d+\.\d+(?![\w.])").set_parse_action(
    lambda t: ast.FloatLit(float(t[0]))
)
byte_lit = pp.Regex(r"\d+b(?!\w)").set_parse_action(make_byte)
int_lit = pp.Regex(r"-?\d+(?!\w)").set_parse_action(lambda t: ast.IntLit(int(t[0])))
ufloat_lit = pp.Regex(r"\d+\.\d+(?![\w.])").set_parse_action(
    lambda t: ast.FloatLit(float(t[0]))
)
nat_lit = pp.Regex(r"\d+(?!\w)").set_parse_action(lambda t: ast.IntLit(int(t[0])))
char_lit = pp.Regex(r"'(?:\\.|[^'\\])'").set_parse_action(make_char)
boolean = (pp.Keyword("true") | pp.Keyword("false")).set_parse_action(
    lambda t: ast.BoolLit(t[0] == "true")
)

literal = float_lit | byte_lit | int_lit | char_lit | boolean
# literals that may follow a function in an application; `f -1` is a subtraction
arg_literal = ufloat_lit | byte_lit | nat_lit | char_lit | boolean


### Type expressions

type_expr = pp.Forward()
atomic_type = pp.Forward()


def make_paren_type(t):
    items = list(t[0])
    if len(items) == 1:
        return items[0]
    return ast.TupleType(items)


atomic_type <<= (
    (S("(") + S(")")).set_parse_action(lambda: ast.TupleType([]))
    | (S("(") + pp.Group(pp.delimited_list(type_expr)) + S(")")).set_parse_action(
        make_paren_type
    )
    | (ctor_name | ident).copy().set_parse_action(lambda t: ast.TypeLiteral(t[0]))
)

applied_type = (ctor_name + pp.OneOrMore(atomic_type)).set_parse_action(
    lambda t: ast.TypeApplication(t[0], list(t[1:]))
)

type_expr <<= ((applied_type | atomic_type) + pp.Optional(S("->") + type_expr)).set_parse_action(
    lambda t: ast.FuncType(t[0], t[1]) if len(t) == 2 else t[0]
)


### Patterns

pattern = pp.Forward()


def make_paren_pattern(t):
    items = list(t[0])
    if len(items) == 1:
        return items[0]
    return ast.TuplePattern(items)


atomic_pattern = (
    wildcard.copy().set_parse_action(lambda: ast.WildcardPattern())
    | literal.copy().set_parse_action(lambda t: ast.LiteralPattern(t[0]))
    | ident.copy().set_parse_action(lambda t: ast.VarPattern(t[0]))
    | ctor_name.copy().set_parse_action(lambda t: ast.ConstructorPattern(t[0], []))
    | (S("(") + S(")")).set_parse_action(lambda: ast.TuplePattern([]))
    | (S("(") + pp.Group(pp.delimited_list(pattern)) + S(")")).set_parse_action(
        make_paren_pattern
    )
    | (
        S("{")
        + pp.Group(pp.Optional(pp.delimited_list(pp.Group(ident + S(":") + pattern))))
        + S("}")
    ).set_parse_action(lambda t: ast.RecordPattern([(f, p) for f, p in t[0]]))
)

pattern <<= (ctor_name + pp.OneOrMore(atomic_pattern)).set_parse_action(
    lambda t: ast.ConstructorPattern(t[0], list(t[1:]))
) | atomic_pattern


### Expressions

expr = pp.Forward()


def fold_binops(t):
    return functools.reduce(
        lambda acc, i: ast.BinOp(t[i], acc, t[i + 1]), range(1, len(t), 2), t[0]
    )


def make_parenthesized(t):
    items = list(t[0])
    if len(items) == 1:
        return items[0]
    return ast.Tuple(items)


def make_sequence(t):
    *effects, last = t
    if not effects:
        return last
    return ast.Seq([("_", e) for e in effects], last)


def make_postfix(t):
    result = t[0]
    for op, arg in t[1:]:
        match op, arg:
            case "[", _:
                result = ast.ArrayIndex(result, arg)
            case ".", ast.IntLit(index):
                result = ast.TupleProj(result, index)
            case ".", _:
                result = ast.FieldAccess(result, arg)
    return result


def make_application(t):
    head, *args = t
    if not args:
        return head
    if isinstance(head, ast.Constructor) and not head.args:
        return ast.Constructor(head.name, args)
    return functools.reduce(ast.Application, args, head)


parenthesized = (
    (S("(") + S(")")).set_parse_action(lambda: ast.UNIT)
    | (
        S("(")
        + pp.Group(
            pp.delimited_list(
                (expr + pp.ZeroOrMore(S(";") + expr)).set_parse_action(make_sequence)
            )
        )
        + S(")")
    ).set_parse_action(make_parenthesized)
)

record = (
    S("{")
    + pp.Group(pp.Optional(pp.delimited_list(pp.Group(ident + S(":") + expr))))
    + S("}")
).set_parse_action(lambda t: ast.Record([(f, e) for f, e in t[0]]))

array = (
    S("[|") + pp.Group(pp.Optional(pp.delimited_list(expr))) + S("|]")
).set_parse_action(lambda t: ast.Array(list(t[0])))

varref = ident.copy().set_parse_action(lambda t: ast.Var(t[0]))
constructor = ctor_name.copy().set_parse_action(lambda t: ast.Constructor(t[0], []))

atom = parenthesized | record | array | varref | constructor

postfix_op = pp.Group(
    pp.Regex(r"\.(?!\.)") + (pp.Regex(r"\d+").set_parse_action(lambda t: ast.IntLit(int(t[0]))) | ident)
) | pp.Group(pp.Regex(r"\[(?!\|)") + expr + S("]"))

postfix = (atom + pp.ZeroOrMore(postfix_op)).set_parse_action(make_postfix)

unary = pp.Forward()
operand = arg_literal | unary
unary <<= (
    (S(pp.Regex(r"!(?!=)")) + operand).set_parse_action(lambda t: ast.RefGet(t[0]))
    | (K("ref") + operand).set_parse_action(lambda t: ast.NewRef(t[0]))
    | postfix
)

application = ((literal | unary) + pp.ZeroOrMore(arg_literal | unary)).set_parse_action(
    make_application
)

range_expr = (application + pp.Optional(S("..") + application)).set_parse_action(
    lambda t: ast.Range(t[0], t[1]) if len(t) == 2 else t[0]
)

product = (range_expr + pp.ZeroOrMore(pp.one_of("* /") + range_expr)).set_parse_action(
    fold_binops
)

sum_ = (product + pp.ZeroOrMore(pp.Regex(r"\+|-(?!>)") + product)).set_parse_action(
    fold_binops
)

comparison = (
    sum_ + pp.ZeroOrMore(pp.Regex(r"==|!=|<=|>=|<|>") + sum_)
).set_parse_action(fold_binops)

assignment = (comparison + pp.Optional(S(":=") + expr)).set_parse_action(
    lambda t: ast.RefSet(t[0], t[1]) if len(t) == 2 else t[0]
)


def make_let(t):
    name, ann, val = t[0]
    ann = ann[0] if ann else None
    if t[1] == "in":
        return ast.Let(name, val, t[2], ann)
    body = t[2][0] if t[2] else ast.UNIT
    if ann is not None:
        return ast.Let(name, val, body, ann)
    if isinstance(body, ast.Seq):
        return ast.Seq([(name, val)] + body.bindings, body.body)
    return ast.Seq([(name, val)], body)


let_binding = pp.Group(
    K("let") + ident + pp.Group(pp.Optional(S(":") + type_expr)) + S("=") + expr
)

let = (
    let_binding + ((pp.Keyword("in") + expr) | (pp.Literal(";") + pp.Group(pp.Optional(expr))))
).set_parse_action(make_let)

param = ident.copy().set_parse_action(lambda t: (t[0], None)) | (
    S("(") + ident + S(":") + type_expr + S(")")
).set_parse_action(lambda t: (t[0], t[1]))

function = (K("fun") + param + S("->") + expr).set_parse_action(
    lambda t: ast.Function(t[0][0], t[1], t[0][1])
)

rec = (K("rec") + ident + S("->") + expr).set_parse_action(lambda t: ast.Rec(t[0], t[1]))

conditional = (K("if") + expr + K("then") + expr + K("else") + expr).set_parse_action(
    lambda t: ast.Conditional(t[0], t[1], t[2])
)

match_arm = (S("|") + pattern + S("->") + expr).set_parse_action(
    lambda t: ast.MatchArm(t[0], t[1])
)
first_arm = (pattern + S("->") + expr).set_parse_action(lambda t: ast.MatchArm(t[0], t[1]))

match = (
    K("match") + expr + K("with") + (match_arm | first_arm) + pp.ZeroOrMore(match_arm)
).set_parse_action(lambda t: ast.Match(t[0], list(t[1:])))

variant = pp.Group(ctor_name + pp.Group(pp.ZeroOrMore(atomic_type)))
sum_type = (S("|") + pp.delimited_list(variant, "|")) | (
    variant + pp.OneOrMore(S("|") + variant)
)


def make_typedef(t):
    name, params, definition, body = t
    if isinstance(definition, ast.TypeExpression):
        return ast.TypeAlias(name, definition, body)
    return ast.TypeDef(
        name, list(params), [(c, list(payload)) for c, payload in definition], body
    )


typedef = (
    K("type")
    + ctor_name
    + pp.Group(pp.ZeroOrMore(ident))
    + S("=")
    + (pp.Group(sum_type) | type_expr)
    + K("in")
    + expr
).set_parse_action(make_typedef)

load = (K("load") + pp.QuotedString('"') + K("in") + expr).set_parse_action(
    lambda t: ast.Load(t[0], t[1])
)

expr <<= let | function | rec | conditional | match | typedef | load | assignment

program = expr
