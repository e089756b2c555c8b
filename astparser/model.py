from dataclasses import dataclass, field
from typing import Callable, Optional

from astparser.types import FundamentalType, Pointer, RawExpr, TypeRef
from bindingerrors import SourceLocation
from headergrammar.dialects import Dialect


@dataclass(frozen=True)
class Declaration:
    name: str
    dialect: Optional[Dialect] = field(default=None, compare=False, kw_only=True)
    location: Optional[SourceLocation] = field(default=None, compare=False, kw_only=True)


@dataclass(frozen=True)
class OpaqueType(Declaration):
    alias_name: str
    tag_name: str


@dataclass(frozen=True)
class TypeAlias(Declaration):
    base_type: FundamentalType


@dataclass(frozen=True)
class Constant(Declaration):
    value: RawExpr


@dataclass(frozen=True)
class Flag:
    name: str
    value: RawExpr


@dataclass(frozen=True)
class Flags(Declaration):
    underlying: FundamentalType
    entries: tuple[Flag, ...]


@dataclass(frozen=True)
class Enumerator:
    name: str
    value: Optional[RawExpr] = None


@dataclass(frozen=True)
class Enumeration(Declaration):
    tag_name: Optional[str]
    entries: tuple[Enumerator, ...]

    def effective_values(
            self,
            resolve: Callable[[RawExpr, dict[str, int]], Optional[int]] = lambda value, known: value.as_int()
    ) -> list[Optional[int]]:
        """
        Applies the auto-increment rule: an entry without an explicit value is the previous entry plus one, the
        first entry defaults to 0. `resolve` turns an explicit value into an int given the enumerators computed so
        far; entries that depend on a value it cannot compute are None.
        """
        values: list[Optional[int]] = []
        known: dict[str, int] = {}
        previous: Optional[int] = -1
        for entry in self.entries:
            if entry.value is not None:
                value = resolve(entry.value, known)
            elif previous is not None:
                value = previous + 1
            else:
                value = None
            if value is not None:
                known[entry.name] = value
            values.append(value)
            previous = value
        return values


@dataclass(frozen=True)
class Field:
    name: str
    base_type: TypeRef
    pointer: Pointer = Pointer.NONE
    is_const: bool = False
    array_len: Optional[str] = None


@dataclass(frozen=True)
class Structure(Declaration):
    fields: tuple[Field, ...]
    union_fields: Optional[tuple[Field, ...]] = None
    trailing_alias: Optional[str] = None
    tag_name: Optional[str] = None


@dataclass(frozen=True)
class Argument:
    name: Optional[str]
    base_type: TypeRef
    pointer: Pointer = Pointer.NONE
    is_const: bool = False


@dataclass(frozen=True)
class Callback(Declaration):
    return_type: TypeRef
    return_pointer: Pointer
    args: tuple[Argument, ...]
    is_variadic: bool = False


@dataclass(frozen=True)
class Function(Declaration):
    return_type: TypeRef
    return_pointer: Pointer
    args: tuple[Argument, ...]


@dataclass(frozen=True)
class Preset(Declaration):
    values: tuple[RawExpr, ...]


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    message: str


@dataclass(frozen=True)
class ErrorMapping(Declaration):
    entries: tuple[ErrorEntry, ...]


@dataclass(frozen=True)
class Macro(Declaration):
    raw_body: str


TYPE_DECLARATIONS = (OpaqueType, Structure, Flags, Enumeration, Callback, TypeAlias)


@dataclass(frozen=True)
class DeclarationSequence:
    file: str
    dialect: Dialect
    declarations: tuple[Declaration, ...]
