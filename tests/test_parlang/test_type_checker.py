import pytest

from parlang import abstract_syntax as ast, parser, type_checker, unification
from parlang import types as t
from parlang.type_checker import TypeEnv, generalize, infer, instantiate
from parlang.types import TypeScheme, TypeVar


def infer_type(src):
    return str(type_checker.typecheck(parser.parse_program(src)))


OPTION = "type Option a = Some a | None in "
LIST = "type List a = Cons a (List a) | Nil in "


def test_infer_literals():
    assert infer(ast.IntLit(42), TypeEnv())[0] == t.Int()
    assert infer(ast.TRUE, TypeEnv())[0] == t.Bool()
    assert infer(ast.FloatLit(1.5), TypeEnv())[0] == t.Float()
    assert infer(ast.CharLit("a"), TypeEnv())[0] == t.Char()
    assert infer(ast.ByteLit(7), TypeEnv())[0] == t.Byte()


def test_infer_variable_instantiates_scheme():
    a = TypeVar(100)
    env = TypeEnv().extend("id", TypeScheme((a,), t.Fun(t.Var(a), t.Var(a))))
    ty, _ = infer(ast.Var("id"), env)
    assert ty == t.Fun(t.Var(TypeVar(0)), t.Var(TypeVar(0)))


def test_generalize_skips_variables_free_in_env():
    env = TypeEnv().extend_mono("x", t.Var(TypeVar(0)))
    ty = t.Fun(t.Var(TypeVar(0)), t.Var(TypeVar(1)))
    assert generalize(ty, env) == TypeScheme((TypeVar(1),), ty)


def test_instantiate_uses_fresh_variables():
    env = TypeEnv()
    scheme = TypeScheme((TypeVar(7),), t.Ref(t.Var(TypeVar(7))))
    first = instantiate(scheme, env)
    second = instantiate(scheme, env)
    assert first != second
    assert isinstance(first, t.Ref)


@pytest.mark.parametrize(
    "expect, src",
    [
        ("Int", "42"),
        ("Float", "1.5 + 2.5"),
        ("Byte", "10b + 20b"),
        ("Bool", "'a' < 'b'"),
        ("Bool", "1 == 2"),
        ("t0 -> t0", "fun x -> x"),
        ("Int -> Int", "fun (x : Int) -> x"),
        ("(t0 -> t0) -> t0 -> t0", "fun (f : a -> a) -> f"),
        ("(Int -> Int) -> Int", "fun f -> f 1 + 1"),
        ("(Int, Bool)", "let id = fun x -> x in (id 1, id true)"),
        ("Int", "let x : Int = 5 in x"),
        ("Int", "type MyInt = Int in let x : MyInt = 5 in x"),
        ("Bool", "let x = 1; let y = true; y"),
        ("Int -> Int", "rec fact -> fun n -> if n == 0 then 1 else n * fact (n - 1)"),
        ("Float -> Float", "fun x -> x + 1.0"),
        ("Byte -> Byte", "fun x -> 1b + x"),
    ],
)
def test_infer_functions_and_bindings(src, expect):
    assert infer_type(src) == expect


@pytest.mark.parametrize(
    "expect, src",
    [
        ("()", "()"),
        ("Bool", "(1, true).1"),
        ("{age: Int, name: Int}", "{ name: 42, age: 30 }"),
        ("Int", "{ name: 42, age: 30 }.age"),
        ("{age: t1 | r0} -> t1", "fun r -> r.age"),
        ("Int", "(fun r -> r.age) { name: 1, age: 2 }"),
        ("Option Int", OPTION + "Some 42"),
        ("Option t0", OPTION + "None"),
        ("Option Int", OPTION + "let f = Some in f 1"),
        ("List Int", LIST + "Cons 1 (Cons 2 Nil)"),
        ("List Option Int", LIST + OPTION + "Cons (Some 1) Nil"),
        ("Option Int -> Int", OPTION + "fun o -> match o with | Some x -> x | None -> 0"),
        ("Bool", "match (1, true) with | (n, b) -> b"),
        ("Int", "match { name: 1, age: 25 } with | { age: a } -> a"),
        ("Array Int", "[|1, 2, 3|]"),
        ("Int", "[|1, 2, 3|][0]"),
        ("Range", "1..10"),
        ("Ref Int", "ref 5"),
        ("Int", "!(ref 1)"),
        ("()", "let r = ref 1 in r := 2"),
    ],
)
def test_infer_data(src, expect):
    assert infer_type(src) == expect


def test_infer_load_is_unconstrained():
    ty, _ = infer(ast.Load("lib.par", ast.IntLit(1)), TypeEnv())
    assert isinstance(ty, t.Var)


def test_unbound_variable():
    with pytest.raises(unification.UnboundVariable) as e:
        infer_type("y")
    assert str(e.value) == "Unbound variable: y"


@pytest.mark.parametrize(
    "src",
    [
        "if 1 then 2 else 3",
        "1 + true",
        "1 + 1.5",
        "'a' + 'b'",
        "!5",
        "[|1, true|]",
        "rec f -> fun x -> if true then f 1 else f true",
        "(fun id -> (id 1, id true)) (fun x -> x)",
    ],
)
def test_unification_errors(src):
    with pytest.raises(unification.UnificationError):
        infer_type(src)


def test_unification_error_message():
    with pytest.raises(unification.UnificationError) as e:
        infer_type("if 1 then 2 else 3")
    assert str(e.value) == "Cannot unify types: Int and Bool"


@pytest.mark.parametrize("src", ["fun f -> f f", "rec f -> fun x -> f"])
def test_occurs_check(src):
    with pytest.raises(unification.OccursCheckFailed):
        infer_type(src)


def test_recursion_requires_function():
    with pytest.raises(unification.RecursionRequiresAnnotation):
        infer_type("rec f -> 42")


def test_missing_field():
    with pytest.raises(unification.FieldNotFound) as e:
        infer_type("(fun r -> r.age) { name: 42 }")
    assert e.value.field == "age"
    assert e.value.available == ["name"]


def test_second_field_access_on_open_record_is_rejected():
    with pytest.raises(unification.FieldNotFound):
        infer_type("fun r -> r.x + r.y")


def test_record_errors():
    with pytest.raises(unification.RecordFieldMismatch):
        infer_type("{ a: 1 } == { b: 1 }")
    with pytest.raises(unification.RecordExpected) as e:
        infer_type("(1, 2).x")
    assert str(e.value) == "Expected record type, got (Int, Int)"


def test_constructor_arity():
    with pytest.raises(unification.ConstructorArityMismatch) as e:
        infer_type("type Pair = | P Int Int in P 1")
    assert (e.value.expected, e.value.actual) == (2, 1)


def test_unknown_type():
    with pytest.raises(unification.UnknownType):
        infer_type("let x : Foo = 1 in x")


def test_tuple_index_out_of_bounds():
    with pytest.raises(unification.TupleIndexOutOfBounds):
        infer_type("(1, 2).5")


def test_resolve_type_shares_variables_within_annotation():
    ty = type_checker.resolve_type(parser.parse_type("a -> a"), TypeEnv())
    assert ty == t.Fun(t.Var(TypeVar(0)), t.Var(TypeVar(0)))


def test_resolve_type_applications():
    env = TypeEnv().with_sum_type("Option", ["a"], [("Some", [ast.TypeLiteral("a")])])
    ty = type_checker.resolve_type(parser.parse_type("Array (Option Int)"), env)
    assert ty == t.Array(t.SumType("Option", (t.Int(),)))
    assert str(ty) == "Array (Option Int)"

    with pytest.raises(unification.UnknownType):
        type_checker.resolve_type(parser.parse_type("Option Int Int"), env)
