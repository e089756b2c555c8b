import logging
import re
from dataclasses import dataclass
from typing import Optional, Iterable

from astparser import get_user_type_name
from astparser.model import Declaration, DeclarationSequence, OpaqueType, Structure, Flags, Enumeration, Callback, \
    TypeAlias, Constant, Preset, Function, ErrorMapping, Macro, Field, TYPE_DECLARATIONS
from astparser.types import TypeRef, RawExpr
from bindingerrors import DuplicateDeclarationError, UnresolvedTypeError, SourceLocation
from headergrammar.dialects import Dialect

logger = logging.getLogger(__name__)

_NUMERIC = re.compile(r"^[0-9]")


@dataclass(frozen=True)
class LinkerConfig:
    # a Structure with the name of an OpaqueType supplies the layout of that handle instead of being a duplicate
    complete_opaque_types: bool = False


@dataclass(frozen=True)
class ValueSymbol:
    name: str
    declaration: Declaration


@dataclass(frozen=True)
class LinkedModel:
    sources: tuple[tuple[str, Dialect], ...]
    declarations: tuple[Declaration, ...]
    types: dict[str, Declaration]
    values: dict[str, ValueSymbol]
    completed_opaque_types: frozenset[str]

    def resolve_type(self, typ: TypeRef) -> Optional[Declaration]:
        name = get_user_type_name(typ)
        return self.types.get(name) if name is not None else None

    def resolve_value(self, name: str) -> Optional[ValueSymbol]:
        return self.values.get(name)


def value_names(declaration: Declaration) -> list[str]:
    if isinstance(declaration, (Constant, Preset, Function, ErrorMapping)):
        return [declaration.name]
    elif isinstance(declaration, Flags):
        return [entry.name for entry in declaration.entries]
    elif isinstance(declaration, Enumeration):
        return [entry.name for entry in declaration.entries]
    return []


class SymbolTable:
    """
    The two namespaces of a translation run: C type names and the names of values (constants, flag entries,
    presets, enumerators and functions). Declarations are never modified, the table only associates names.
    """

    def __init__(self, config: LinkerConfig):
        self._config = config
        self.types: dict[str, Declaration] = {}
        self.values: dict[str, ValueSymbol] = {}
        self.completed_opaque_types: set[str] = set()

    def register(self, declaration: Declaration) -> bool:
        if isinstance(declaration, TYPE_DECLARATIONS) and not self._register_type(declaration):
            return False
        for name in value_names(declaration):
            self._register_value(name, declaration)
        return True

    def _register_type(self, declaration: Declaration) -> bool:
        existing = self.types.get(declaration.name)
        if existing is None:
            self.types[declaration.name] = declaration
            return True
        if isinstance(existing, OpaqueType) and isinstance(declaration, OpaqueType) \
                and existing.tag_name == declaration.tag_name:
            logger.debug(f"Skipping re-declaration of opaque type {declaration.name} at {declaration.location}")
            return False
        if self._config.complete_opaque_types:
            if isinstance(existing, OpaqueType) and isinstance(declaration, Structure):
                logger.debug(f"Structure {declaration.name} completes opaque type declared at {existing.location}")
                self.types[declaration.name] = declaration
                self.completed_opaque_types.add(declaration.name)
                return True
            if isinstance(existing, Structure) and isinstance(declaration, OpaqueType):
                return False
        raise DuplicateDeclarationError(declaration.name, existing.location, declaration.location)

    def _register_value(self, name: str, declaration: Declaration):
        existing = self.values.get(name)
        if existing is not None:
            raise DuplicateDeclarationError(name, existing.declaration.location, declaration.location)
        self.values[name] = ValueSymbol(name=name, declaration=declaration)


class Linker:
    _config: LinkerConfig

    def __init__(self, config: Optional[LinkerConfig] = None):
        self._config = config if config is not None else LinkerConfig()

    def link(self, sequences: Iterable[DeclarationSequence]) -> LinkedModel:
        sequences = list(sequences)
        table = SymbolTable(self._config)
        declarations = [declaration
                        for sequence in sequences
                        for declaration in sequence.declarations
                        if table.register(declaration)]

        for declaration in declarations:
            _Resolver(table, declaration).resolve()

        logger.info(f"Linked {len(declarations)} declarations from {len(sequences)} files "
                    f"({len(table.types)} types, {len(table.values)} values)")
        return LinkedModel(
            sources=tuple((sequence.file, sequence.dialect) for sequence in sequences),
            declarations=tuple(declarations),
            types=dict(table.types),
            values=dict(table.values),
            completed_opaque_types=frozenset(table.completed_opaque_types)
        )


class _Resolver:
    def __init__(self, table: SymbolTable, declaration: Declaration):
        self._table = table
        self._declaration = declaration

    def resolve(self):
        declaration = self._declaration
        if isinstance(declaration, Structure):
            for field in declaration.fields + (declaration.union_fields or ()):
                self._resolve_field(field)
        elif isinstance(declaration, (Callback, Function)):
            self._resolve_type(declaration.return_type)
            for argument in declaration.args:
                self._resolve_type(argument.base_type)
        elif isinstance(declaration, Flags):
            for entry in declaration.entries:
                self._resolve_expression(entry.value)
        elif isinstance(declaration, Enumeration):
            for entry in declaration.entries:
                if entry.value is not None:
                    self._resolve_expression(entry.value)
        elif isinstance(declaration, Constant):
            self._resolve_expression(declaration.value)
        elif isinstance(declaration, Preset):
            for value in declaration.values:
                self._resolve_expression(value)
        elif isinstance(declaration, ErrorMapping):
            for entry in declaration.entries:
                self._resolve_value(entry.code)
        elif not isinstance(declaration, (OpaqueType, TypeAlias, Macro)):
            raise Exception(f"Unhandled declaration {declaration}")

    def _resolve_field(self, field: Field):
        self._resolve_type(field.base_type)
        if field.array_len is not None and not _NUMERIC.match(field.array_len):
            self._resolve_value(field.array_len)

    def _resolve_type(self, typ: TypeRef):
        name = get_user_type_name(typ)
        if name is not None and name not in self._table.types:
            self._unresolved(name)

    def _resolve_expression(self, expression: RawExpr):
        for name in expression.identifiers():
            self._resolve_value(name)

    def _resolve_value(self, name: str):
        if name not in self._table.values:
            self._unresolved(name)

    def _unresolved(self, name: str):
        location: Optional[SourceLocation] = self._declaration.location
        raise UnresolvedTypeError(self._declaration.name, name, location)


def link(sequences: Iterable[DeclarationSequence], config: Optional[LinkerConfig] = None) -> LinkedModel:
    return Linker(config).link(sequences)
