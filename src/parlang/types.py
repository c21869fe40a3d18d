from __future__ import annotations

import abc
import dataclasses
from typing import Optional


class Type(abc.ABC):
    pass


@dataclasses.dataclass(frozen=True)
class TypeVar:
    id: int

    def __str__(self):
        return f"t{self.id}"


@dataclasses.dataclass(frozen=True)
class Int(Type):
    def __str__(self):
        return "Int"


@dataclasses.dataclass(frozen=True)
class Bool(Type):
    def __str__(self):
        return "Bool"


@dataclasses.dataclass(frozen=True)
class Float(Type):
    def __str__(self):
        return "Float"


@dataclasses.dataclass(frozen=True)
class Byte(Type):
    def __str__(self):
        return "Byte"


@dataclasses.dataclass(frozen=True)
class Char(Type):
    def __str__(self):
        return "Char"


@dataclasses.dataclass(frozen=True)
class Range(Type):
    def __str__(self):
        return "Range"


@dataclasses.dataclass(frozen=True)
class Var(Type):
    var: TypeVar

    def __str__(self):
        return str(self.var)


@dataclasses.dataclass(frozen=True)
class Fun(Type):
    arg: Type
    ret: Type

    def __str__(self):
        if isinstance(self.arg, Fun):
            return f"({self.arg}) -> {self.ret}"
        return f"{self.arg} -> {self.ret}"


@dataclasses.dataclass(frozen=True)
class Record(Type):
    """A record type; `row` is set when the record may have further fields."""

    fields: tuple[tuple[str, Type], ...]
    row: Optional[int] = None

    @staticmethod
    def of(fields: dict[str, Type], row: Optional[int] = None) -> Record:
        return Record(tuple(sorted(fields.items())), row)

    def field_map(self) -> dict[str, Type]:
        return dict(self.fields)

    def __str__(self):
        fields = ", ".join(f"{k}: {t}" for k, t in self.fields)
        if self.row is None:
            return "{" + fields + "}"
        if fields:
            return "{" + fields + f" | r{self.row}" + "}"
        return "{" + f"r{self.row}" + "}"


@dataclasses.dataclass(frozen=True)
class SumType(Type):
    name: str
    args: tuple[Type, ...] = ()

    def __str__(self):
        return " ".join([self.name] + [str(a) for a in self.args])


@dataclasses.dataclass(frozen=True)
class Ref(Type):
    inner: Type

    def __str__(self):
        return f"Ref {show_argument(self.inner)}"


@dataclasses.dataclass(frozen=True)
class Array(Type):
    elem: Type

    def __str__(self):
        return f"Array {show_argument(self.elem)}"


@dataclasses.dataclass(frozen=True)
class Tuple(Type):
    items: tuple[Type, ...]

    def __str__(self):
        return "(" + ", ".join(map(str, self.items)) + ")"


UNIT = Tuple(())


def show_argument(ty: Type) -> str:
    match ty:
        case Fun() | Ref() | Array() | SumType(_, (_, *_)):
            return f"({ty})"
        case _:
            return str(ty)


@dataclasses.dataclass(frozen=True)
class TypeScheme:
    vars: tuple[TypeVar, ...]
    ty: Type

    @staticmethod
    def mono(ty: Type) -> TypeScheme:
        return TypeScheme((), ty)

    def __str__(self):
        if not self.vars:
            return str(self.ty)
        return f"forall {', '.join(map(str, self.vars))}. {self.ty}"
