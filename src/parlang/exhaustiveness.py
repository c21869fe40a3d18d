import dataclasses
from typing import TypeAlias

from parlang import abstract_syntax as ast
from parlang.values import ConstructorInfo, Environment


@dataclasses.dataclass(frozen=True)
class Exhaustive:
    pass


@dataclasses.dataclass(frozen=True)
class NonExhaustive:
    missing: list[str]


Result: TypeAlias = Exhaustive | NonExhaustive


@dataclasses.dataclass
class Coverage:
    constructors: set[str] = dataclasses.field(default_factory=set)
    bools: set[bool] = dataclasses.field(default_factory=set)
    ints: set[int] = dataclasses.field(default_factory=set)
    other_literals: bool = False
    structured: bool = False

    def collect(self, pattern: ast.Pattern):
        match pattern:
            case ast.LiteralPattern(ast.BoolLit(b)):
                self.bools.add(b)
            case ast.LiteralPattern(ast.IntLit(n)):
                self.ints.add(n)
            case ast.LiteralPattern():
                self.other_literals = True
            case ast.ConstructorPattern(name, args):
                self.constructors.add(name)
                for arg in args:
                    self.collect(arg)
            case ast.TuplePattern(items):
                self.structured = True
                for item in items:
                    self.collect(item)
            case ast.RecordPattern(fields):
                self.structured = True
                for _, p in fields:
                    self.collect(p)
            case ast.WildcardPattern() | ast.VarPattern():
                pass
            case _:
                raise NotImplementedError(pattern)


def check_exhaustiveness(patterns: list[ast.Pattern], env: Environment) -> Result:
    """Decide whether `patterns` cover every value of the scrutinee.

    Only the top level is analysed. Nested patterns contribute the
    constructors and literals they mention but are not proven complete.
    """
    if not patterns:
        return NonExhaustive(["_"])

    if any(isinstance(p, (ast.WildcardPattern, ast.VarPattern)) for p in patterns):
        return Exhaustive()

    coverage = Coverage()
    for p in patterns:
        coverage.collect(p)

    missing = missing_constructors(coverage.constructors, env)
    if missing:
        return NonExhaustive(missing)

    if coverage.bools and len(coverage.bools) < 2:
        return NonExhaustive(["false" if True in coverage.bools else "true"])

    if coverage.ints:
        return NonExhaustive(["<other integers>"])

    if coverage.other_literals or coverage.structured:
        return NonExhaustive(["_"])

    return Exhaustive()


def missing_constructors(covered: set[str], env: Environment) -> list[str]:
    type_names = []
    for name in sorted(covered):
        info = env.get_constructor(name)
        if info is not None and info.type_name not in type_names:
            type_names.append(info.type_name)

    return [
        ctor
        for type_name in type_names
        for ctor in env.get_constructors_for_type(type_name)
        if ctor not in covered
    ]


def non_exhaustive_matches(
    expr: ast.Expression, env: Environment
) -> list[tuple[ast.Match, NonExhaustive]]:
    """Check every `match` in a program, outermost first.

    Constructors are registered as their type definitions come into scope.
    """
    found = []
    stack = [(expr, env)]
    while stack:
        node, env = stack.pop()
        match node:
            case ast.Match(_, arms):
                result = check_exhaustiveness([arm.pattern for arm in arms], env)
                if isinstance(result, NonExhaustive):
                    found.append((node, result))
            case ast.TypeDef(name, _, constructors, _):
                for ctor, payload in constructors:
                    env = env.register_constructor(
                        ctor, ConstructorInfo(name, len(payload))
                    )
        stack.extend((child, env) for child in reversed(list(children(node))))
    return found


def children(node: ast.AstNode):
    for field in dataclasses.fields(node):
        value = getattr(node, field.name)
        if isinstance(value, ast.Expression):
            yield value
        elif isinstance(value, ast.MatchArm):
            yield value.body
        elif isinstance(value, list):
            for item in value:
                match item:
                    case ast.Expression():
                        yield item
                    case ast.MatchArm(_, body):
                        yield body
                    case (_, ast.Expression() as e):
                        yield e
