from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class CtypeFieldType:
    pass


@dataclass(frozen=True)
class NamedCtypeFieldType(CtypeFieldType):
    name: str


@dataclass(frozen=True)
class PrimitiveCtypeFieldType(CtypeFieldType):
    # ctypes attribute name, None for void
    ctype: Optional[str]


@dataclass(frozen=True)
class CtypeFieldTypeArray(CtypeFieldType):
    of: CtypeFieldType
    size: str


@dataclass(frozen=True)
class CtypeFieldPointer(CtypeFieldType):
    of: CtypeFieldType


@dataclass(frozen=True)
class Import:
    path: Optional[str]
    imports: tuple[str, ...]


@dataclass(frozen=True)
class Element:
    name: str


@dataclass(frozen=True)
class CtypeStructField:
    name: str
    type: CtypeFieldType


@dataclass(frozen=True)
class OpaqueStructDefinition(Element):
    pass


@dataclass(frozen=True)
class CtypeStructDefinition(Element):
    base: str = "Structure"


@dataclass(frozen=True)
class CtypeStructDeclaration(Element):
    fields: tuple[CtypeStructField, ...]
    anonymous: tuple[str, ...] = ()


@dataclass(frozen=True)
class Definition(Element):
    for_type: CtypeFieldType


@dataclass(frozen=True)
class ConstantDefinition(Element):
    expression: str


@dataclass(frozen=True)
class PresetDefinition(Element):
    values: tuple[str, ...]


@dataclass(frozen=True)
class MacroComment(Element):
    body: str


@dataclass(frozen=True)
class EnumEntry(Element):
    value: str


@dataclass(frozen=True)
class Enum(Element):
    entries: tuple[EnumEntry, ...]


@dataclass(frozen=True)
class FunctionPrototype(Element):
    return_type: CtypeFieldType
    parameter_types: tuple[CtypeFieldType, ...]
    variadic: bool = False


@dataclass(frozen=True)
class LibraryLoader(Element):
    library: str


@dataclass(frozen=True)
class LibraryFunction(Element):
    loader: str
    return_type: CtypeFieldType
    parameter_types: tuple[CtypeFieldType, ...]


@dataclass(frozen=True)
class ErrorLookupEntry:
    code: str
    message: str


@dataclass(frozen=True)
class ErrorLookup(Element):
    entries: tuple[ErrorLookupEntry, ...]
    default: str


@dataclass(frozen=True)
class ErrorClass(Element):
    lookup: Optional[str]
    result_enum: str
    ok: str
    default: str


@dataclass(frozen=True)
class WrapperFunction(Element):
    function: str
    parameters: tuple[str, ...]
    # the first C argument is the handle of the owning class
    bound: bool = False
    checked: bool = False


@dataclass(frozen=True)
class HandleClass(Element):
    opaque_type: str
    methods: tuple[WrapperFunction, ...]


@dataclass(frozen=True)
class BindingFile:
    name: str
    sources: tuple[str, ...]
    imports: tuple[Import, ...]
    elements: tuple[Element, ...]
    uses_callbacks: bool = field(default=False)
    uses_libraries: bool = field(default=False)

