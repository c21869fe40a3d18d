from __future__ import annotations

import abc
import dataclasses
import itertools
from typing import Any, Iterator, Optional

from parlang import abstract_syntax as ast


class Value(abc.ABC):
    pass


@dataclasses.dataclass(frozen=True)
class Int(Value):
    val: int

    def __str__(self):
        return str(self.val)


@dataclasses.dataclass(frozen=True)
class Bool(Value):
    val: bool

    def __str__(self):
        return "true" if self.val else "false"


@dataclasses.dataclass(frozen=True)
class Float(Value):
    val: float

    def __str__(self):
        return repr(self.val)


@dataclasses.dataclass(frozen=True)
class Char(Value):
    val: str

    def __str__(self):
        return f"'{self.val}'"


@dataclasses.dataclass(frozen=True)
class Byte(Value):
    val: int

    def __str__(self):
        return f"{self.val}b"


TRUE = Bool(True)
FALSE = Bool(False)


@dataclasses.dataclass(eq=False)
class Closure(Value):
    param: str
    body: ast.Expression
    env: Environment

    def __str__(self):
        return f"<function {self.param}>"


@dataclasses.dataclass(eq=False)
class RecClosure(Value):
    name: str
    param: str
    body: ast.Expression
    env: Environment

    def __str__(self):
        return f"<function {self.name}>"


@dataclasses.dataclass(eq=False)
class ConstructorFunction(Value):
    """A constructor used as a function: collects arguments until its arity is reached."""

    name: str
    arity: int
    args: tuple[Value, ...] = ()

    def __str__(self):
        return f"<constructor {self.name}>"


@dataclasses.dataclass(frozen=True)
class Tuple(Value):
    items: tuple[Value, ...]

    def __str__(self):
        return "(" + ", ".join(map(str, self.items)) + ")"


UNIT = Tuple(())


@dataclasses.dataclass(frozen=True)
class Array(Value):
    items: tuple[Value, ...]

    @property
    def size(self) -> int:
        return len(self.items)

    def __str__(self):
        return "[|" + ", ".join(map(str, self.items)) + f"|] (size: {self.size})"


@dataclasses.dataclass(frozen=True)
class Record(Value):
    fields: dict[str, Value]

    def __str__(self):
        return "{" + ", ".join(f"{k}: {v}" for k, v in self.fields.items()) + "}"


@dataclasses.dataclass(frozen=True)
class Variant(Value):
    constructor: str
    args: tuple[Value, ...] = ()

    def __str__(self):
        if not self.args:
            return self.constructor
        return f"{self.constructor}(" + ", ".join(map(str, self.args)) + ")"


@dataclasses.dataclass(frozen=True)
class Range(Value):
    start: int
    end: int

    def __str__(self):
        return f"{self.start}..{self.end}"


@dataclasses.dataclass
class Cell:
    val: Value


_ref_ids = itertools.count()


@dataclasses.dataclass(frozen=True)
class Reference(Value):
    id: int
    cell: Cell = dataclasses.field(compare=False)

    @staticmethod
    def new(val: Value) -> Reference:
        return Reference(next(_ref_ids), Cell(val))

    def __str__(self):
        return f"ref({self.cell.val})"


### Environment


@dataclasses.dataclass(frozen=True)
class ConstructorInfo:
    type_name: str
    arity: int


class Bindings:
    """Persistent linked bindings; extending never touches the parent."""

    def __init__(self, key=None, val=None, next=None):
        self.key = key
        self.val = val
        self.next = next

    def get(self, k: str) -> Any:
        node = self
        while node.key is not None:
            if node.key == k:
                return node.val
            node = node.next
        raise LookupError(k)

    def extend(self, k: str, v: Any) -> Bindings:
        return Bindings(k, v, self)

    def items(self) -> Iterator[tuple[str, Any]]:
        """Yield each visible binding once, innermost first."""
        seen = set()
        node = self
        while node.key is not None:
            if node.key not in seen:
                seen.add(node.key)
                yield node.key, node.val
            node = node.next


EMPTY = Bindings()


@dataclasses.dataclass(frozen=True)
class Environment:
    vars: Bindings = EMPTY
    constructors: Bindings = EMPTY

    def lookup(self, name: str) -> Optional[Value]:
        try:
            return self.vars.get(name)
        except LookupError:
            return None

    def extend(self, name: str, val: Value) -> Environment:
        return Environment(self.vars.extend(name, val), self.constructors)

    def merge(self, other: Environment) -> Environment:
        bindings = self.vars
        for k, v in reversed(list(other.vars.items())):
            bindings = bindings.extend(k, v)
        constructors = self.constructors
        for k, v in reversed(list(other.constructors.items())):
            constructors = constructors.extend(k, v)
        return Environment(bindings, constructors)

    def items(self) -> Iterator[tuple[str, Value]]:
        return self.vars.items()

    def register_constructor(self, name: str, info: ConstructorInfo) -> Environment:
        return Environment(self.vars, self.constructors.extend(name, info))

    def get_constructor(self, name: str) -> Optional[ConstructorInfo]:
        try:
            return self.constructors.get(name)
        except LookupError:
            return None

    def get_constructors_for_type(self, type_name: str) -> list[str]:
        names = [
            name
            for name, info in self.constructors.items()
            if info.type_name == type_name
        ]
        return names[::-1]
