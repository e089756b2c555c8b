import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from pycparser import c_ast
from pycparser.c_ast import Node, Decl, Typedef, TypeDecl, IdentifierType, PtrDecl, ArrayDecl, Constant as CConstant, \
    ID, ParamList, Typename, FuncDecl, EllipsisParam, FileAST
from pycparser.c_parser import CParser, ParseError as CParseError

from astparser.model import *
from astparser.types import *
from bindingerrors import ParseError, SourceLocation
from headergrammar.dialects import Dialect
from headergrammar.productions import RawNode, MARKERS, ERROR_CASE
from headergrammar.source import SourceText

logger = logging.getLogger(__name__)

_C_KEYWORDS = {
    "auto", "break", "case", "char", "const", "continue", "default", "do", "double", "else", "enum", "extern",
    "float", "for", "goto", "if", "inline", "int", "long", "register", "restrict", "return", "short", "signed",
    "sizeof", "static", "struct", "switch", "typedef", "union", "unsigned", "void", "volatile", "while", "_Bool"
}
_QUALIFIERS = {"const", "volatile"}
_DECLARATION_STARTS = {"{", ";", "(", ",", "typedef"}
_TOKEN = re.compile(r"\.\.\.|[A-Za-z_]\w*|[0-9][\w.]*|\S")
_MARKER = re.compile(rf"\b(?:{'|'.join(MARKERS)})\b")
_C_ERROR_COORD = re.compile(r":(?P<line>\d+)(?::(?P<column>\d+))?:")
_ENUMERATOR = re.compile(r"^\s*(?P<name>[A-Za-z_]\w*)\s*(?:=\s*(?P<value>.+?))?\s*$", re.DOTALL)


def _is_identifier(token: str) -> bool:
    return re.fullmatch(r"[A-Za-z_]\w*", token) is not None


def _user_type_names(text: str) -> list[str]:
    """Identifiers that start a declaration and are neither keywords nor declared names."""
    tokens = _TOKEN.findall(text)
    names: list[str] = []
    for index, token in enumerate(tokens):
        if not _is_identifier(token) or token in _C_KEYWORDS or token in names:
            continue
        before = index - 1
        while before >= 0 and tokens[before] in _QUALIFIERS:
            before -= 1
        previous = tokens[before] if before >= 0 else ";"
        if previous not in _DECLARATION_STARTS:
            continue
        following = index + 1
        while following < len(tokens) and tokens[following] in _QUALIFIERS:
            following += 1
        following_token = tokens[following] if following < len(tokens) else ""
        is_type = previous == "typedef" \
            or following_token == "*" \
            or (_is_identifier(following_token) and following_token not in _C_KEYWORDS) \
            or (previous in ("(", ",") and following_token in (")", ","))
        if is_type:
            names.append(token)
    return names


class _SnippetParser:
    """
    Parses a single C declaration with pycparser. User type names used in the snippet are declared with a leading
    `typedef int NAME;` each, calling convention markers are blanked.
    """
    _c_parser: CParser

    def __init__(self, source: SourceText):
        self._c_parser = CParser()
        self._source = source

    def parse(self, node: RawNode) -> Node:
        text = _MARKER.sub(lambda it: " " * len(it.group(0)), node.text)
        names = _user_type_names(text)
        prefix = "".join(f"typedef int {name};\n" for name in names)
        try:
            ast: FileAST = self._c_parser.parse(prefix + text, self._source.file)
        except CParseError as error:
            raise self._convert_error(error, node, len(names)) from error
        return ast.ext[-1]

    @staticmethod
    def _convert_error(error: CParseError, node: RawNode, prefix_lines: int) -> ParseError:
        message = str(error)
        coord = _C_ERROR_COORD.search(message)
        line, column = node.location.line, node.location.column
        if coord is not None and int(coord.group("line")) > prefix_lines:
            relative_line = int(coord.group("line")) - prefix_lines - 1
            relative_column = int(coord.group("column") or 1)
            line = node.location.line + relative_line
            column = node.location.column + relative_column - 1 if relative_line == 0 else relative_column
            message = message[coord.end():].strip()
        return ParseError(node.location.file, line, column, (node.production,), message)


@dataclass(frozen=True)
class _ParsedType:
    base_type: TypeRef
    pointer: Pointer
    is_const: bool
    array_len: Optional[str]


def _error(location: SourceLocation, message: str) -> ParseError:
    return ParseError(location.file, location.line, location.column, (), message)


def _is_constant(node: Node) -> bool:
    return "const" in node.quals


def _parse_array_dimension(array_dimension: Node, location: SourceLocation) -> str:
    if isinstance(array_dimension, CConstant) and array_dimension.type == "int":
        return array_dimension.value
    elif isinstance(array_dimension, ID):
        return array_dimension.name
    raise _error(location, "array length must be an integer literal or a constant name")


def _parse_base_type(node: Node, location: SourceLocation) -> TypeRef:
    if isinstance(node, IdentifierType):
        fundamental_type = FundamentalType.from_keywords(" ".join(node.names))
        if fundamental_type is not None:
            return fundamental_type
        if len(node.names) == 1 and node.names[0] not in _C_KEYWORDS:
            return UserTypeRef(node.names[0])
        raise _error(location, f"unsupported fundamental type {' '.join(node.names)}")
    elif isinstance(node, (c_ast.Struct, c_ast.Union, c_ast.Enum)):
        if getattr(node, "decls", None) is not None or getattr(node, "values", None) is not None:
            raise _error(location, f"inline definition of {node.name} is not supported")
        return UserTypeRef(node.name)
    raise _error(location, f"unexpected type {type(node).__name__}")


def _parse_type(node: Node, location: SourceLocation) -> _ParsedType:
    array_len = None
    if isinstance(node, ArrayDecl):
        array_len = _parse_array_dimension(node.dim, location)
        node = node.type
        if isinstance(node, ArrayDecl):
            raise _error(location, "multi dimensional arrays are not supported")
    depth = 0
    while isinstance(node, PtrDecl):
        depth += 1
        node = node.type
    if isinstance(node, FuncDecl):
        raise _error(location, "inline function pointers are not supported, use a callback typedef")
    if not isinstance(node, TypeDecl):
        raise _error(location, f"unexpected declarator {type(node).__name__}")
    pointer = Pointer.of_depth(depth)
    if pointer is None:
        raise _error(location, f"{depth} levels of indirection are not supported")
    return _ParsedType(
        base_type=_parse_base_type(node.type, location),
        pointer=pointer,
        is_const=_is_constant(node),
        array_len=array_len
    )


def _split_top_level(text: str, separator: str = ",") -> list[tuple[int, str]]:
    parts: list[tuple[int, str]] = []
    depth = 0
    start = 0
    for index, character in enumerate(text):
        if character in "([{":
            depth += 1
        elif character in ")]}":
            depth -= 1
        elif character == separator and depth == 0:
            parts.append((start, text[start:index]))
            start = index + 1
    parts.append((start, text[start:]))
    return [(offset, part) for offset, part in parts if part.strip() != ""]


class _StructureParser:
    def __init__(self, snippet_parser: _SnippetParser):
        self._snippet_parser = snippet_parser

    def parse(self, node: RawNode, **identity) -> Structure:
        declaration = self._snippet_parser.parse(node)
        if isinstance(declaration, Typedef):
            struct = declaration.type.type
        else:
            struct = declaration.type
        if not isinstance(struct, c_ast.Struct):
            raise _error(node.location, "expected a structure")

        fields: list[Field] = []
        union_fields: Optional[tuple[Field, ...]] = None
        members = struct.decls or []
        for index, member in enumerate(members):
            if member.name is None and isinstance(member.type, c_ast.Union):
                if index != len(members) - 1:
                    raise _error(node.location, "an anonymous union must be the last member of a structure")
                union_fields = tuple(self._parse_field(it, node.location) for it in member.type.decls or [])
            elif member.name is None:
                raise _error(node.location, "anonymous members other than a trailing union are not supported")
            else:
                fields.append(self._parse_field(member, node.location))

        tag = node.groups.get("tag")
        alias = node.groups.get("alias")
        return Structure(
            name=alias or tag,
            fields=tuple(fields),
            union_fields=union_fields,
            trailing_alias=alias,
            tag_name=tag,
            **identity
        )

    @staticmethod
    def _parse_field(member: Decl, location: SourceLocation) -> Field:
        parsed_type = _parse_type(member.type, location)
        return Field(
            name=member.name,
            base_type=parsed_type.base_type,
            pointer=parsed_type.pointer,
            is_const=parsed_type.is_const,
            array_len=parsed_type.array_len
        )


class _CallableParser:
    def __init__(self, snippet_parser: _SnippetParser):
        self._snippet_parser = snippet_parser

    def parse_callback(self, node: RawNode, **identity) -> Callback:
        typedef = self._snippet_parser.parse(node)
        if not isinstance(typedef, Typedef) or not isinstance(typedef.type, PtrDecl) \
                or not isinstance(typedef.type.type, FuncDecl):
            raise _error(node.location, "expected a function pointer typedef")
        function = typedef.type.type
        return_type = self._parse_return_type(function, node.location)
        arguments, variadic = self._parse_arguments(function.args, node.location)
        return Callback(
            name=typedef.name,
            return_type=return_type.base_type,
            return_pointer=return_type.pointer,
            args=arguments,
            is_variadic=variadic,
            **identity
        )

    def parse_function(self, node: RawNode, **identity) -> Function:
        declaration = self._snippet_parser.parse(node)
        if not isinstance(declaration, Decl) or not isinstance(declaration.type, FuncDecl):
            raise _error(node.location, "expected a function declaration")
        return_type = self._parse_return_type(declaration.type, node.location)
        arguments, variadic = self._parse_arguments(declaration.type.args, node.location)
        if variadic:
            raise _error(node.location, f"variadic function {declaration.name} is not supported")
        return Function(
            name=declaration.name,
            return_type=return_type.base_type,
            return_pointer=return_type.pointer,
            args=arguments,
            **identity
        )

    @staticmethod
    def _parse_return_type(function: FuncDecl, location: SourceLocation) -> _ParsedType:
        return_type = _parse_type(function.type, location)
        if return_type.pointer == Pointer.DOUBLE:
            raise _error(location, "double pointer return types are not supported")
        return return_type

    @staticmethod
    def _parse_arguments(parameters: Optional[ParamList], location: SourceLocation) -> tuple[tuple[Argument, ...], bool]:
        if parameters is None:
            return (), False
        if not isinstance(parameters, ParamList):
            raise _error(location, f"unexpected type for function arguments {type(parameters).__name__}")
        arguments: list[Argument] = []
        variadic = False
        for parameter in parameters.params:
            if isinstance(parameter, EllipsisParam):
                variadic = True
                continue
            if not isinstance(parameter, (Decl, Typename)):
                raise _error(location, f"unexpected parameter {type(parameter).__name__}")
            parsed_type = _parse_type(parameter.type, location)
            if parsed_type.array_len is not None:
                raise _error(location, f"array parameter {parameter.name} is not supported")
            if parsed_type.base_type == FundamentalType.VOID and parsed_type.pointer == Pointer.NONE:
                if len(parameters.params) == 1 and parameter.name is None:
                    return (), False
                raise _error(location, "void is only allowed as the sole parameter")
            arguments.append(Argument(
                name=parameter.name,
                base_type=parsed_type.base_type,
                pointer=parsed_type.pointer,
                is_const=parsed_type.is_const
            ))
        return tuple(arguments), variadic


class _EnumerationParser:
    def __init__(self, source: SourceText):
        self._source = source

    def parse(self, node: RawNode, **identity) -> Enumeration:
        body = node.groups["body"]
        body_offset = node.start + node.text.index("{") + 1
        entries: list[Enumerator] = []
        for offset, entry in _split_top_level(body):
            match = _ENUMERATOR.match(entry)
            if match is None:
                location = self._source.location(body_offset + offset + len(entry) - len(entry.lstrip()))
                raise ParseError(location.file, location.line, location.column, ("Enumerator",))
            value = match.group("value")
            entries.append(Enumerator(
                name=match.group("name"),
                value=RawExpr(" ".join(value.split())) if value is not None else None
            ))
        alias = node.groups["alias"]
        return Enumeration(
            name=alias,
            tag_name=node.groups.get("tag"),
            entries=tuple(entries),
            **identity
        )


class AstBuilder:
    _dialect: Dialect
    _source: SourceText
    _builders: dict[str, Callable[..., Declaration]]

    def __init__(self, dialect: Dialect, source: SourceText):
        self._dialect = dialect
        self._source = source
        snippet_parser = _SnippetParser(source)
        structure_parser = _StructureParser(snippet_parser)
        callable_parser = _CallableParser(snippet_parser)
        self._builders = {
            "OpaqueType": self._opaque_type,
            "TypeAlias": self._type_alias,
            "Flags": self._flags,
            "Enumeration": _EnumerationParser(source).parse,
            "Structure": structure_parser.parse,
            "Callback": callable_parser.parse_callback,
            "Function": callable_parser.parse_function,
            "Constant": self._constant,
            "Preset": self._preset,
            "Macro": self._macro,
            "ExcludedDefine": self._macro,
            "ErrorMapping": self._error_mapping,
        }

    def build(self, nodes: list[RawNode]) -> DeclarationSequence:
        declarations = tuple(self._build(node) for node in nodes)
        if logger.isEnabledFor(logging.DEBUG):
            counts: dict[str, int] = {}
            for declaration in declarations:
                counts[type(declaration).__name__] = counts.get(type(declaration).__name__, 0) + 1
            logger.debug(f"Built {counts} from {self._source.file}")
        return DeclarationSequence(file=self._source.file, dialect=self._dialect, declarations=declarations)

    def _build(self, node: RawNode) -> Declaration:
        builder = self._builders.get(node.production)
        if builder is None:
            raise Exception(f"Unhandled production {node.production}")
        return builder(node, dialect=self._dialect, location=node.location)

    @staticmethod
    def _opaque_type(node: RawNode, **identity) -> OpaqueType:
        return OpaqueType(
            name=node.groups["alias"],
            alias_name=node.groups["alias"],
            tag_name=node.groups["tag"],
            **identity
        )

    @staticmethod
    def _fundamental_type(node: RawNode) -> FundamentalType:
        fundamental_type = FundamentalType.from_keywords(node.groups["type"])
        if fundamental_type is None:
            raise _error(node.location, f"unsupported fundamental type {node.groups['type']}")
        return fundamental_type

    def _type_alias(self, node: RawNode, **identity) -> TypeAlias:
        return TypeAlias(name=node.groups["name"], base_type=self._fundamental_type(node), **identity)

    def _flags(self, node: RawNode, **identity) -> Flags:
        return Flags(
            name=node.groups["name"],
            underlying=self._fundamental_type(node),
            entries=tuple(Flag(name=entry.groups["name"], value=RawExpr(entry.groups["value"]))
                          for entry in node.entries),
            **identity
        )

    @staticmethod
    def _constant(node: RawNode, **identity) -> Constant:
        return Constant(name=node.groups["name"], value=RawExpr(node.groups["value"]), **identity)

    @staticmethod
    def _preset(node: RawNode, **identity) -> Preset:
        return Preset(
            name=node.groups["name"],
            values=tuple(RawExpr(value.strip()) for _, value in _split_top_level(node.groups["values"])),
            **identity
        )

    @staticmethod
    def _macro(node: RawNode, **identity) -> Macro:
        return Macro(name=node.groups["name"], raw_body=node.groups["body"].strip(), **identity)

    @staticmethod
    def _error_mapping(node: RawNode, **identity) -> ErrorMapping:
        return ErrorMapping(
            name=node.groups["name"],
            entries=tuple(ErrorEntry(code=case.group("code"), message=case.group("message")[1:-1])
                          for case in ERROR_CASE.finditer(node.groups["cases"])),
            **identity
        )
