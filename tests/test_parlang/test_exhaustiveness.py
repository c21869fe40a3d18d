import pytest

from parlang import abstract_syntax as ast, parser
from parlang.exhaustiveness import (
    Exhaustive,
    NonExhaustive,
    check_exhaustiveness,
    non_exhaustive_matches,
)
from parlang.values import ConstructorInfo, Environment

ENV = (
    Environment()
    .register_constructor("Some", ConstructorInfo("Option", 1))
    .register_constructor("None", ConstructorInfo("Option", 0))
    .register_constructor("Red", ConstructorInfo("Color", 0))
    .register_constructor("Green", ConstructorInfo("Color", 0))
    .register_constructor("Blue", ConstructorInfo("Color", 0))
)


def ctor(name, *args):
    return ast.ConstructorPattern(name, list(args))


def lit(val):
    match val:
        case bool():
            return ast.LiteralPattern(ast.BoolLit(val))
        case int():
            return ast.LiteralPattern(ast.IntLit(val))


@pytest.mark.parametrize(
    "expect, patterns",
    [
        (NonExhaustive(["_"]), []),
        (Exhaustive(), [ast.WildcardPattern()]),
        (Exhaustive(), [lit(0), ast.VarPattern("n")]),
        (NonExhaustive(["None"]), [ctor("Some", ast.VarPattern("x"))]),
        (Exhaustive(), [ctor("Some", ast.VarPattern("x")), ctor("None")]),
        (Exhaustive(), [ctor("Some", ast.VarPattern("x")), ast.WildcardPattern()]),
        (NonExhaustive(["Green", "Blue"]), [ctor("Red")]),
        (NonExhaustive(["Green"]), [ctor("Blue"), ctor("Red")]),
        (NonExhaustive(["false"]), [lit(True)]),
        (NonExhaustive(["true"]), [lit(False)]),
        (Exhaustive(), [lit(True), lit(False)]),
        (NonExhaustive(["<other integers>"]), [lit(0), lit(1)]),
        (NonExhaustive(["_"]), [ast.LiteralPattern(ast.CharLit("a"))]),
        (
            NonExhaustive(["_"]),
            [ast.TuplePattern([ast.VarPattern("a"), ast.VarPattern("b")])],
        ),
        (NonExhaustive(["_"]), [ast.RecordPattern([("x", ast.WildcardPattern())])]),
    ],
)
def test_check_exhaustiveness(patterns, expect):
    assert check_exhaustiveness(patterns, ENV) == expect


def test_missing_constructors_of_nested_patterns_are_reported():
    patterns = [ctor("Some", ctor("Red"))]
    assert check_exhaustiveness(patterns, ENV) == NonExhaustive(
        ["Green", "Blue", "None"]
    )


def test_non_exhaustive_matches_in_program():
    program = parser.parse_program(
        "type Option a = Some a | None in "
        "fun o -> match o with "
        "| Some x -> (match x with | 0 -> 1) "
        "| None -> 0"
    )
    found = non_exhaustive_matches(program, Environment())

    assert [result for _, result in found] == [NonExhaustive(["<other integers>"])]
    assert isinstance(found[0][0], ast.Match)


def test_non_exhaustive_matches_uses_types_in_scope():
    program = parser.parse_program(
        "type Option a = Some a | None in match Some 1 with | Some x -> x"
    )
    [(_, result)] = non_exhaustive_matches(program, Environment())
    assert result == NonExhaustive(["None"])


def test_non_exhaustive_matches_accepts_complete_program():
    program = parser.parse_program("let f = fun b -> match b with | true -> 1 | false -> 0; f true")
    assert non_exhaustive_matches(program, Environment()) == []
