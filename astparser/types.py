import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class FundamentalType(Enum):
    CHAR = "char"
    UNSIGNED_CHAR = "unsigned char"
    SIGNED_CHAR = "signed char"
    INT = "int"
    UNSIGNED_INT = "unsigned int"
    SHORT = "short"
    UNSIGNED_SHORT = "unsigned short"
    LONG_LONG = "long long"
    LONG = "long"
    UNSIGNED_LONG_LONG = "unsigned long long"
    UNSIGNED_LONG = "unsigned long"
    VOID = "void"
    FLOAT = "float"

    @staticmethod
    def from_keywords(text: str) -> Optional['FundamentalType']:
        normalized = " ".join(text.split())
        for fundamental_type in FundamentalType:
            if fundamental_type.value == normalized:
                return fundamental_type
        return None


# longest spelling first so "unsigned long long" wins over "unsigned long"
FUNDAMENTAL_TYPE_PATTERN = "(?:" + "|".join(
    r"\s+".join(fundamental_type.value.split())
    for fundamental_type in sorted(FundamentalType, key=lambda it: -len(it.value))
) + r")\b"


class Pointer(Enum):
    NONE = 0
    SINGLE = 1
    DOUBLE = 2

    @staticmethod
    def of_depth(depth: int) -> Optional['Pointer']:
        for pointer in Pointer:
            if pointer.value == depth:
                return pointer
        return None


@dataclass(frozen=True)
class UserTypeRef:
    name: str


TypeRef = Union[FundamentalType, UserTypeRef]


_C_INTEGER_LITERAL = re.compile(r"^([+-]?)\s*(0[xX][0-9A-Fa-f]+|0[0-7]*|[1-9][0-9]*)[uUlL]*$")
_STRING_LITERAL = re.compile(r"\"(?:[^\"\\]|\\.)*\"")
_IDENTIFIER = re.compile(r"(?<![\w.])[A-Za-z_]\w*")
_EXPRESSION_KEYWORDS = {"sizeof", "char", "short", "int", "long", "unsigned", "signed", "float", "void", "const"}


@dataclass(frozen=True)
class RawExpr:
    text: str

    def as_int(self) -> Optional[int]:
        text = self.text.strip()
        while text.startswith("(") and text.endswith(")"):
            text = text[1:-1].strip()
        match = _C_INTEGER_LITERAL.match(text)
        if match is None:
            return None
        sign, digits = match.groups()
        if digits.lower().startswith("0x"):
            value = int(digits, 16)
        elif len(digits) > 1 and digits.startswith("0"):
            value = int(digits, 8)
        else:
            value = int(digits)
        return -value if sign == "-" else value

    def identifiers(self) -> list[str]:
        names: list[str] = []
        for name in _IDENTIFIER.findall(_STRING_LITERAL.sub('""', self.text)):
            if name not in _EXPRESSION_KEYWORDS and name not in names:
                names.append(name)
        return names

    def __str__(self):
        return self.text
