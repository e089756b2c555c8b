from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int
    column: int

    def __str__(self):
        return f"{self.file}:{self.line}:{self.column}"


class BindingError(Exception):
    category: str = "binding error"

    def describe(self) -> str:
        return f"{self.category}: {self}"


class ParseError(BindingError):
    category = "parse error"

    def __init__(self, file: str, line: int, column: int, expected: tuple[str, ...], message: Optional[str] = None):
        self.file = file
        self.line = line
        self.column = column
        self.expected = tuple(expected)
        self.message = message
        super().__init__(self._format())

    @property
    def location(self) -> SourceLocation:
        return SourceLocation(self.file, self.line, self.column)

    def _format(self) -> str:
        text = f"{self.file}:{self.line}:{self.column}: "
        if self.message is not None:
            text += self.message
            if len(self.expected) > 0:
                text += ", "
        if len(self.expected) > 0:
            text += f"expected one of {', '.join(self.expected)}"
        return text


class LinkError(BindingError):
    category = "link error"


class UnresolvedTypeError(LinkError):
    category = "unresolved type"

    def __init__(self, referencing_declaration: str, missing_symbol: str, location: Optional[SourceLocation] = None):
        self.referencing_declaration = referencing_declaration
        self.missing_symbol = missing_symbol
        self.location = location
        where = f"{location}: " if location is not None else ""
        super().__init__(f"{where}{referencing_declaration} references unknown symbol {missing_symbol}")


class DuplicateDeclarationError(LinkError):
    category = "duplicate declaration"

    def __init__(self, name: str, first_location: Optional[SourceLocation],
                 second_location: Optional[SourceLocation]):
        self.name = name
        self.first_location = first_location
        self.second_location = second_location
        super().__init__(f"{name} declared at {second_location} was already declared at {first_location}")


class UnsupportedConstructError(BindingError):
    category = "unsupported construct"

    def __init__(self, declaration: str, reason: str, location: Optional[SourceLocation] = None):
        self.declaration = declaration
        self.reason = reason
        self.location = location
        where = f"{location}: " if location is not None else ""
        super().__init__(f"{where}{declaration}: {reason}")
