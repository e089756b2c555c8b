import keyword
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from astparser.model import Declaration, OpaqueType, TypeAlias, Flags, Enumeration, Constant, Preset, Macro, \
    Structure, Field, Callback, Function, Argument, ErrorMapping
from astparser import get_user_type_name
from astparser.types import FundamentalType, Pointer, TypeRef, UserTypeRef
from bindingerrors import UnsupportedConstructError
from bindinggenerator import fundamental_types_to_ctypes
from bindinggenerator.expressions import translate_expression, IntegerEvaluator, ExpressionError
from bindinggenerator.model import BindingFile, Import, Element, CtypeFieldType, NamedCtypeFieldType, \
    PrimitiveCtypeFieldType, CtypeFieldPointer, CtypeFieldTypeArray, CtypeStructField, OpaqueStructDefinition, \
    CtypeStructDefinition, CtypeStructDeclaration, Definition, ConstantDefinition, PresetDefinition, MacroComment, \
    Enum as EnumElement, EnumEntry as EnumElementEntry, FunctionPrototype, LibraryLoader, LibraryFunction, \
    ErrorLookup, ErrorLookupEntry, ErrorClass, WrapperFunction, HandleClass
from headergrammar.dialects import Dialect
from linker import LinkedModel

logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown error."
UNION_FIELD_NAME = "__union"
RESULT_ENUMERATION = "FMOD_RESULT"
RESULT_OK = "FMOD_OK"
ERROR_CLASS_NAME = "FmodError"

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])|(?<=[a-z])(?=[0-9])")

DEFAULT_GROUPS: dict[Dialect, str] = {
    Dialect.CORE_COMMON: "core",
    Dialect.CORE_CODEC: "core",
    Dialect.CORE_OUTPUT: "core",
    Dialect.CORE_DSP: "dsp",
    Dialect.CORE_DSP_EFFECTS: "dsp",
    Dialect.CORE: "core_api",
    Dialect.STUDIO_COMMON: "studio",
    Dialect.STUDIO: "studio",
    Dialect.ERROR_TABLE: "errors",
}

DEFAULT_LIBRARIES: dict[Dialect, str] = {
    Dialect.CORE: "fmod",
    Dialect.STUDIO: "fmodstudio",
}


@dataclass(frozen=True)
class EmitterConfig:
    emit_macros: bool = True
    # emit variadic callbacks with their fixed arguments only instead of failing
    fixed_arity_variadics: bool = False
    groups: dict[Dialect, str] = field(default_factory=lambda: dict(DEFAULT_GROUPS))
    libraries: dict[Dialect, str] = field(default_factory=lambda: dict(DEFAULT_LIBRARIES))
    # module of checked wrappers emitted after all others, None to omit it
    wrapper_module: Optional[str] = "wrappers"


def ctypes_enum_name(name: str) -> str:
    return f"enum_{name}"


def union_name(structure_name: str) -> str:
    return f"{structure_name}{UNION_FIELD_NAME}"


def snake_case(name: str) -> str:
    return _WORD_BOUNDARY.sub("_", name.replace("3D", "3d")).lower()


def handle_class_name(function_name: str) -> str:
    prefix = function_name[:function_name.rfind("_")]
    return prefix.removeprefix("FMOD_").replace("_", "")


def parameter_name(name: Optional[str], index: int) -> str:
    if name is None:
        return f"arg{index}"
    name = snake_case(name)
    if keyword.iskeyword(name) or name == "self":
        return f"{name}_"
    return name


def _primitive(fundamental_type: FundamentalType) -> PrimitiveCtypeFieldType:
    return PrimitiveCtypeFieldType(fundamental_types_to_ctypes[fundamental_type])


class ValueEvaluator:
    """Integer values of named constants, flag entries and enumerators, None where not computable."""

    def __init__(self, linked: LinkedModel):
        self._linked = linked
        self._values: dict[str, Optional[int]] = {}
        self._enumerations: dict[str, list[Optional[int]]] = {}
        self._active: set[str] = set()

    def evaluate(self, text: str, known: Optional[dict[str, int]] = None) -> Optional[int]:
        known = known or {}
        return IntegerEvaluator(lambda name: known[name] if name in known else self.value_of(name)).evaluate(text)

    def value_of(self, name: str) -> Optional[int]:
        if name in self._values:
            return self._values[name]
        symbol = self._linked.resolve_value(name)
        if symbol is None or name in self._active:
            return None
        self._active.add(name)
        declaration = symbol.declaration
        value = None
        if isinstance(declaration, Constant):
            value = self.evaluate(declaration.value.text)
        elif isinstance(declaration, Flags):
            entry = next(entry for entry in declaration.entries if entry.name == name)
            value = self.evaluate(entry.value.text)
        elif isinstance(declaration, Enumeration):
            names = [entry.name for entry in declaration.entries]
            value = self.effective_values(declaration)[names.index(name)]
        self._active.discard(name)
        self._values[name] = value
        return value

    def effective_values(self, enumeration: Enumeration) -> list[Optional[int]]:
        values = self._enumerations.get(enumeration.name)
        if values is None:
            values = enumeration.effective_values(lambda value, known: self.evaluate(value.text, known))
            self._enumerations[enumeration.name] = values
        return values


class _ModuleGenerator:
    def __init__(self, group: str, groups: list[str], owners: dict[str, str], linked: LinkedModel,
                 evaluator: ValueEvaluator, config: EmitterConfig):
        self._group = group
        self._groups = groups
        self._owners = owners
        self._linked = linked
        self._evaluator = evaluator
        self._config = config
        self._needed: dict[str, str] = {}
        self._current: Optional[Declaration] = None

    def generate(self, declarations: list[Declaration], sources: tuple[str, ...]) -> BindingFile:
        opaque_types: list[Element] = []
        values: list[Element] = []
        struct_definitions: list[Element] = []
        callbacks: list[Element] = []
        layouts: list[Element] = []
        loaders: list[Element] = []
        functions: list[Element] = []
        lookups: list[Element] = []

        for declaration in declarations:
            self._current = declaration
            if isinstance(declaration, OpaqueType):
                opaque_types.append(OpaqueStructDefinition(declaration.name))
            elif isinstance(declaration, TypeAlias):
                values.append(Definition(declaration.name, _primitive(declaration.base_type)))
            elif isinstance(declaration, Flags):
                values += self._flags(declaration)
            elif isinstance(declaration, Enumeration):
                values += self._enumeration(declaration)
            elif isinstance(declaration, Constant):
                values.append(ConstantDefinition(declaration.name, self._expression(declaration.value.text)))
            elif isinstance(declaration, Preset):
                values.append(PresetDefinition(
                    declaration.name,
                    tuple(self._expression(value.text) for value in declaration.values)
                ))
            elif isinstance(declaration, Macro):
                if self._config.emit_macros:
                    values.append(MacroComment(declaration.name, declaration.raw_body))
            elif isinstance(declaration, Structure):
                definitions, declarations_of_layout = self._structure(declaration)
                struct_definitions += definitions
                layouts += declarations_of_layout
            elif isinstance(declaration, Callback):
                callbacks.append(self._callback(declaration))
            elif isinstance(declaration, Function):
                loader = self._loader_name(declaration)
                if not any(element.name == loader for element in loaders):
                    loaders.append(LibraryLoader(loader, self._config.libraries[declaration.dialect]))
                functions.append(self._function(declaration, loader))
            elif isinstance(declaration, ErrorMapping):
                lookups.append(self._error_lookup(declaration))
            else:
                raise Exception(f"Unhandled declaration {declaration}")
        self._current = None

        return BindingFile(
            name=f"{self._group}.py",
            sources=sources,
            imports=self._imports(),
            elements=tuple(opaque_types + values + struct_definitions + callbacks + layouts + loaders + functions
                           + lookups),
            uses_callbacks=len(callbacks) > 0,
            uses_libraries=len(functions) > 0
        )

    def _flags(self, flags: Flags) -> list[Element]:
        elements: list[Element] = [Definition(flags.name, _primitive(flags.underlying))]
        for entry in flags.entries:
            elements.append(ConstantDefinition(entry.name, self._expression(entry.value.text)))
        return elements

    def _enumeration(self, enumeration: Enumeration) -> list[Element]:
        entries: list[EnumElementEntry] = []
        effective_values = self._evaluator.effective_values(enumeration)
        previous: Optional[str] = None
        for entry, effective_value in zip(enumeration.entries, effective_values):
            if entry.value is not None:
                value = self._expression(entry.value.text, inside=enumeration.name)
            elif effective_value is not None:
                value = str(effective_value)
            else:
                value = f"{previous} + 1"
            entries.append(EnumElementEntry(entry.name, value))
            previous = entry.name
        return [
            EnumElement(enumeration.name, tuple(entries)),
            Definition(ctypes_enum_name(enumeration.name), _primitive(FundamentalType.INT))
        ]

    def _structure(self, structure: Structure) -> tuple[list[Element], list[Element]]:
        definitions: list[Element] = []
        layouts: list[Element] = []
        if structure.name not in self._linked.completed_opaque_types:
            definitions.append(CtypeStructDefinition(structure.name))
        else:
            self._need(structure.name)

        fields = [self._field(it) for it in structure.fields]
        anonymous: tuple[str, ...] = ()
        if structure.union_fields is not None:
            union = union_name(structure.name)
            definitions.append(CtypeStructDefinition(union, base="Union"))
            layouts.append(CtypeStructDeclaration(union, tuple(self._field(it) for it in structure.union_fields)))
            fields.append(CtypeStructField(UNION_FIELD_NAME, NamedCtypeFieldType(union)))
            anonymous = (UNION_FIELD_NAME,)
        layouts.append(CtypeStructDeclaration(structure.name, tuple(fields), anonymous))
        return definitions, layouts

    def _field(self, field: Field) -> CtypeStructField:
        typ = self._convert_type(field.base_type, field.pointer)
        if field.array_len is not None:
            if self._evaluator.evaluate(field.array_len) is None:
                raise self._unsupported(f"array length {field.array_len} of {field.name} is not an integer")
            typ = CtypeFieldTypeArray(typ, self._expression(field.array_len))
        return CtypeStructField(field.name, typ)

    def _callback(self, callback: Callback) -> FunctionPrototype:
        if callback.is_variadic and not self._config.fixed_arity_variadics:
            raise self._unsupported("variadic callbacks can not be described by ctypes function prototypes")
        if callback.return_pointer != Pointer.NONE:
            # ctypes callbacks can only return simple types
            return_type: CtypeFieldType = PrimitiveCtypeFieldType("c_void_p")
        else:
            return_type = self._convert_type(callback.return_type, callback.return_pointer)
        return FunctionPrototype(
            name=callback.name,
            return_type=return_type,
            parameter_types=self._arguments(callback.args),
            variadic=callback.is_variadic
        )

    def _function(self, function: Function, loader: str) -> LibraryFunction:
        return LibraryFunction(
            name=function.name,
            loader=loader,
            return_type=self._convert_type(function.return_type, function.return_pointer),
            parameter_types=self._arguments(function.args)
        )

    def _loader_name(self, function: Function) -> str:
        library = self._config.libraries.get(function.dialect)
        if library is None:
            raise self._unsupported(f"no library configured for dialect {function.dialect.value}")
        return f"_{library}"

    def _arguments(self, arguments: tuple[Argument, ...]) -> tuple[CtypeFieldType, ...]:
        return tuple(self._convert_type(argument.base_type, argument.pointer) for argument in arguments)

    def _error_lookup(self, mapping: ErrorMapping) -> ErrorLookup:
        return ErrorLookup(
            name=mapping.name,
            entries=tuple(ErrorLookupEntry(self._value_reference(entry.code), entry.message)
                          for entry in mapping.entries),
            default=UNKNOWN_ERROR_MESSAGE
        )

    def _convert_type(self, typ: TypeRef, pointer: Pointer) -> CtypeFieldType:
        depth = pointer.value
        if depth > 0 and typ in (FundamentalType.VOID, FundamentalType.CHAR):
            converted: CtypeFieldType = PrimitiveCtypeFieldType(
                "c_void_p" if typ == FundamentalType.VOID else "c_char_p")
            depth -= 1
        elif isinstance(typ, FundamentalType):
            converted = _primitive(typ)
        else:
            converted = NamedCtypeFieldType(self._type_reference(typ))
        for _ in range(depth):
            converted = CtypeFieldPointer(converted)
        return converted

    def _type_reference(self, typ: UserTypeRef) -> str:
        declaration = self._linked.resolve_type(typ)
        name = ctypes_enum_name(typ.name) if isinstance(declaration, Enumeration) else typ.name
        self._need(name)
        return name

    def _value_reference(self, name: str, inside: Optional[str] = None) -> str:
        symbol = self._linked.resolve_value(name)
        if symbol is None:
            return name
        if isinstance(symbol.declaration, Enumeration):
            if symbol.declaration.name == inside:
                return name
            self._need(symbol.declaration.name)
            return f"{symbol.declaration.name}.{name}"
        self._need(name)
        return name

    def _expression(self, text: str, inside: Optional[str] = None) -> str:
        try:
            return translate_expression(text, lambda name: self._value_reference(name, inside))
        except ExpressionError as error:
            raise self._unsupported(str(error)) from error

    def _need(self, name: str):
        if name not in self._needed:
            self._needed[name] = self._current.name if self._current is not None else self._group

    def _unsupported(self, reason: str) -> UnsupportedConstructError:
        return UnsupportedConstructError(self._current.name, reason, self._current.location)

    def _imports(self) -> tuple[Import, ...]:
        current_index = self._groups.index(self._group)
        imported: dict[str, list[str]] = {}
        for name, referenced_by in self._needed.items():
            owner = self._owners.get(name)
            if owner is None or owner == self._group:
                continue
            if self._groups.index(owner) > current_index:
                raise UnsupportedConstructError(
                    referenced_by,
                    f"{name} is defined in module {owner} which is emitted after module {self._group}"
                )
            imported.setdefault(owner, []).append(name)
        return tuple(Import(f".{group}", tuple(sorted(imported[group])))
                     for group in self._groups if group in imported)


class _WrapperGenerator:
    """
    Groups the library functions by the opaque handle their name starts with (`FMOD_Studio_System_Update` belongs
    to `FMOD_STUDIO_SYSTEM`) and wraps them in one class per handle. Functions of no handle become module level
    functions. Calls returning FMOD_RESULT raise the error class unless they return FMOD_OK.
    """

    def __init__(self, name: str, groups: list[str], owners: dict[str, str], linked: LinkedModel):
        self._name = name
        self._groups = groups
        self._owners = owners
        self._linked = linked
        self._needed: list[str] = []

    def generate(self) -> BindingFile:
        functions = [it for it in self._linked.declarations if isinstance(it, Function)]
        error_class = self._error_class()
        checks = error_class is not None

        handles: dict[str, list[WrapperFunction]] = {}
        for declaration in self._linked.declarations:
            if isinstance(declaration, OpaqueType) and declaration.name not in handles:
                handles[declaration.name] = []
        global_functions: list[Element] = []
        for function in functions:
            key = function.name[:function.name.rfind("_")].upper()
            if key in handles or key in self._linked.completed_opaque_types:
                handles.setdefault(key, []).append(self._wrapper(function, key, checks))
            else:
                global_functions.append(self._wrapper(function, None, checks))

        classes: list[Element] = []
        for opaque_type, methods in handles.items():
            if len(methods) == 0:
                continue
            self._need(opaque_type)
            classes.append(HandleClass(handle_class_name(methods[0].function), opaque_type, tuple(methods)))

        uses_checks = any(method.checked for it in classes for method in it.methods) \
            or any(it.checked for it in global_functions)
        elements: list[Element] = []
        if uses_checks:
            elements.append(error_class)
            self._need(error_class.result_enum)
            if error_class.lookup is not None:
                self._need(error_class.lookup)
        logger.info(f"Generated module {self._name} with {len(classes)} handle classes and "
                    f"{len(global_functions)} functions")
        return BindingFile(
            name=f"{self._name}.py",
            sources=tuple(file for file, _ in self._linked.sources),
            imports=self._imports(),
            elements=tuple(elements + classes + global_functions)
        )

    def _error_class(self) -> Optional[ErrorClass]:
        enumeration = self._linked.resolve_type(UserTypeRef(RESULT_ENUMERATION))
        if not isinstance(enumeration, Enumeration) \
                or not any(entry.name == RESULT_OK for entry in enumeration.entries):
            return None
        lookup = next((it.name for it in self._linked.declarations if isinstance(it, ErrorMapping)), None)
        return ErrorClass(ERROR_CLASS_NAME, lookup, RESULT_ENUMERATION, RESULT_OK, UNKNOWN_ERROR_MESSAGE)

    def _wrapper(self, function: Function, owner: Optional[str], checks: bool) -> WrapperFunction:
        self._need(function.name)
        parameters = tuple(parameter_name(argument.name, index) for index, argument in enumerate(function.args))
        bound = False
        if owner is not None:
            name = snake_case(function.name[function.name.rfind("_") + 1:])
            first = function.args[0] if len(function.args) > 0 else None
            bound = first is not None and get_user_type_name(first.base_type) == owner \
                and first.pointer == Pointer.SINGLE and not first.is_const
        else:
            name = snake_case(function.name.removeprefix("FMOD_"))
        checked = checks and function.return_pointer == Pointer.NONE \
            and get_user_type_name(function.return_type) == RESULT_ENUMERATION
        return WrapperFunction(name, function.name, parameters[1:] if bound else parameters, bound, checked)

    def _need(self, name: str):
        if name not in self._needed:
            self._needed.append(name)

    def _imports(self) -> tuple[Import, ...]:
        imported: dict[str, list[str]] = {}
        for name in self._needed:
            owner = self._owners.get(name)
            if owner is not None:
                imported.setdefault(owner, []).append(name)
        return tuple(Import(f".{group}", tuple(sorted(imported[group])))
                     for group in self._groups if group in imported)


class PythonBindingFileGenerator:
    _config: EmitterConfig

    def __init__(self, config: Optional[EmitterConfig] = None):
        self._config = config if config is not None else EmitterConfig()

    def generate(self, linked: LinkedModel) -> list[BindingFile]:
        groups = self._groups(linked)
        owners = self._owners(linked)
        evaluator = ValueEvaluator(linked)
        binding_files: list[BindingFile] = []
        for group in groups:
            declarations = [it for it in linked.declarations if self._group_of(it.dialect) == group]
            sources = tuple(file for file, dialect in linked.sources if self._group_of(dialect) == group)
            generator = _ModuleGenerator(group, groups, owners, linked, evaluator, self._config)
            binding_files.append(generator.generate(declarations, sources))
            logger.info(f"Generated module {group} with {len(declarations)} declarations")
        wrapper_module = self._config.wrapper_module
        if wrapper_module is not None and any(isinstance(it, Function) for it in linked.declarations):
            if wrapper_module in groups:
                raise Exception(f"Wrapper module {wrapper_module} clashes with a module group")
            binding_files.append(_WrapperGenerator(wrapper_module, groups, owners, linked).generate())
        return binding_files

    def _group_of(self, dialect: Dialect) -> str:
        group = self._config.groups.get(dialect)
        if group is None:
            raise Exception(f"No module group configured for dialect {dialect.value}")
        return group

    def _groups(self, linked: LinkedModel) -> list[str]:
        groups: list[str] = []
        for _, dialect in linked.sources:
            group = self._group_of(dialect)
            if group not in groups:
                groups.append(group)
        return groups

    def _owners(self, linked: LinkedModel) -> dict[str, str]:
        owners: dict[str, str] = {}
        for declaration in linked.declarations:
            group = self._group_of(declaration.dialect)
            names: list[str] = []
            if isinstance(declaration, (OpaqueType, TypeAlias, Structure, Callback, Constant, Preset, Function,
                                        ErrorMapping)):
                names.append(declaration.name)
            elif isinstance(declaration, Flags):
                names += [declaration.name] + [entry.name for entry in declaration.entries]
            elif isinstance(declaration, Enumeration):
                names += [declaration.name, ctypes_enum_name(declaration.name)]
            for name in names:
                owners.setdefault(name, group)
        return owners
