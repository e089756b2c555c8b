import re
from dataclasses import dataclass, field
from typing import Optional

from astparser.types import FUNDAMENTAL_TYPE_PATTERN
from bindingerrors import SourceLocation
from headergrammar.source import SourceText

IDENTIFIER = r"[A-Za-z_]\w*"
# a value is a parenthesized calculation with one level of nesting, a quoted string or a single literal token
VALUE = r"(?:\((?:[^()\n]|\([^()\n]*\))*\)|\"(?:[^\"\\\n]|\\.)*\"|-?[A-Za-z0-9_.]+)"
LINE_END = r"[ \t]*(?=\n|\Z)"
MARKERS = ("F_CALL", "F_CALLBACK", "F_EXPORT", "F_API")


@dataclass(frozen=True)
class RawNode:
    production: str
    text: str
    groups: dict[str, Optional[str]]
    location: SourceLocation
    start: int
    end: int
    entries: tuple['RawNode', ...] = field(default=())


class Production:
    name: str

    def match(self, source: SourceText, offset: int) -> Optional[RawNode]:
        raise NotImplementedError()

    def __repr__(self):
        return self.name


class RegexProduction(Production):
    def __init__(self, name: str, pattern: str):
        self.name = name
        self._regex = re.compile(pattern)

    def match(self, source: SourceText, offset: int) -> Optional[RawNode]:
        match = self._regex.match(source.text, offset)
        if match is None or match.end() == offset:
            return None
        return _node(self.name, source, match)


class FlagsProduction(Production):
    """
    A fundamental typedef directly followed by at least one `#define NAME VALUE` line. Entries whose name is listed
    in `excluded_names` end the flag block.
    """
    _HEAD = rf"typedef\s+(?P<type>{FUNDAMENTAL_TYPE_PATTERN})\s*(?P<name>{IDENTIFIER})\s*;"
    _ENTRY = r"\s*#[ \t]*define[ \t]+{0}(?P<name>{1})[ \t]+(?P<value>{2}){3}"

    def __init__(self, name: str = "Flags", excluded_names: tuple[str, ...] = ()):
        self.name = name
        exclusion = "".join(rf"(?!{excluded}\b)" for excluded in excluded_names)
        self._head = re.compile(self._HEAD)
        self._entry = re.compile(self._ENTRY.format(exclusion, IDENTIFIER, VALUE, LINE_END))

    def match(self, source: SourceText, offset: int) -> Optional[RawNode]:
        head = self._head.match(source.text, offset)
        if head is None:
            return None
        entries: list[RawNode] = []
        end = head.end()
        while True:
            entry = self._entry.match(source.text, end)
            if entry is None:
                break
            leading = len(entry.group(0)) - len(entry.group(0).lstrip())
            entries.append(_node("Flag", source, entry, leading))
            end = entry.end()
        if len(entries) == 0:
            return None
        return RawNode(
            production=self.name,
            text=source.text[offset:end],
            groups=head.groupdict(),
            location=source.location(offset),
            start=offset,
            end=end,
            entries=tuple(entries)
        )


def _node(production: str, source: SourceText, match: re.Match, skip: int = 0) -> RawNode:
    start = match.start() + skip
    return RawNode(
        production=production,
        text=source.text[start:match.end()],
        groups=match.groupdict(),
        location=source.location(start),
        start=start,
        end=match.end()
    )


def directive() -> Production:
    return RegexProduction("Directive", "|".join([
        r"#[ \t]*(?:ifndef|ifdef|if|elif|else|endif|include|pragma|undef)\b[^\n]*",
        rf"#[ \t]*define[ \t]+(?:{'|'.join(MARKERS)})\b[^\n]*",
        rf"#[ \t]*define[ \t]+{IDENTIFIER}{LINE_END}",
        r"extern\s+\"C\"\s*\{",
        r"\}",
    ]))


def error_table_directive() -> Production:
    return RegexProduction("Directive", "|".join([
        rf"static\s+const\s+char\s*\*\s*{IDENTIFIER}\s*\([^()]*\)\s*__attribute__\s*\(\([^()]*\)\)\s*;",
        r"#[ \t]*(?:ifndef|ifdef|if|elif|else|endif|include|pragma|undef)\b[^\n]*",
        rf"#[ \t]*define[ \t]+{IDENTIFIER}{LINE_END}",
    ]))


def macro() -> Production:
    return RegexProduction(
        "Macro",
        rf"#[ \t]*define[ \t]+(?P<name>{IDENTIFIER})(?P<body>\((?:\\\n|[^\n])*)"
    )


def excluded_define(name: str) -> Production:
    return RegexProduction(
        "ExcludedDefine",
        rf"#[ \t]*define[ \t]+(?P<name>{name})\b[ \t]*(?P<body>[^\n]*)"
    )


def flags(excluded_names: tuple[str, ...] = ()) -> Production:
    return FlagsProduction(excluded_names=excluded_names)


def type_alias() -> Production:
    return RegexProduction(
        "TypeAlias",
        rf"typedef\s+(?P<type>{FUNDAMENTAL_TYPE_PATTERN})\s*(?P<name>{IDENTIFIER})\s*;"
    )


def opaque_type() -> Production:
    return RegexProduction(
        "OpaqueType",
        rf"typedef\s+struct\s+(?P<tag>{IDENTIFIER})\s+(?P<alias>{IDENTIFIER})\s*;"
    )


def enumeration() -> Production:
    return RegexProduction(
        "Enumeration",
        rf"typedef\s+enum\s*(?:(?P<tag>{IDENTIFIER})\s*)?\{{(?P<body>[^{{}}]*)\}}\s*(?P<alias>{IDENTIFIER})\s*;"
    )


def structure() -> Production:
    return RegexProduction(
        "Structure",
        rf"(?:typedef\s+)?struct\s+(?:(?P<tag>{IDENTIFIER})\s*)?"
        rf"\{{(?P<body>(?:[^{{}}]|\{{[^{{}}]*\}})*)\}}\s*(?P<alias>{IDENTIFIER})?\s*;"
    )


def callback() -> Production:
    return RegexProduction(
        "Callback",
        rf"typedef\s+(?P<return>[^;(){{}}#]+?)\s*\(\s*(?:(?:{'|'.join(MARKERS)})\s+)?\*\s*(?P<name>{IDENTIFIER})\s*\)"
        r"\s*\((?P<args>[^;{}#]*)\)\s*;"
    )


def function() -> Production:
    return RegexProduction(
        "Function",
        rf"(?P<return>{IDENTIFIER}(?:\s+{IDENTIFIER})*?\s*\**)\s*\bF_API\s+(?P<name>{IDENTIFIER})\s*"
        r"\((?P<args>[^;{}#]*)\)\s*;"
    )


def preset() -> Production:
    return RegexProduction(
        "Preset",
        rf"#[ \t]*define[ \t]+(?P<name>{IDENTIFIER})[ \t]+\{{(?P<values>[^{{}}\n]*)\}}{LINE_END}"
    )


def constant(excluded_names: tuple[str, ...] = ()) -> Production:
    exclusion = "".join(rf"(?!{excluded}\b)" for excluded in excluded_names)
    return RegexProduction(
        "Constant",
        rf"#[ \t]*define[ \t]+{exclusion}(?P<name>{IDENTIFIER})[ \t]+(?P<value>{VALUE}){LINE_END}"
    )


_MESSAGE = r"\"(?:[^\"\\\n]|\\.)*\""


def error_mapping() -> Production:
    return RegexProduction(
        "ErrorMapping",
        rf"static\s+const\s+char\s*\*\s*(?P<name>{IDENTIFIER})\s*\(\s*(?P<type>{IDENTIFIER})\s+{IDENTIFIER}\s*\)\s*"
        rf"\{{\s*switch\s*\(\s*{IDENTIFIER}\s*\)\s*\{{"
        rf"(?P<cases>(?:\s*case\s+{IDENTIFIER}\s*:\s*return\s+{_MESSAGE}\s*;)*)"
        rf"\s*default\s*:\s*return\s+(?P<default>{_MESSAGE})\s*;\s*\}}\s*;?\s*\}}"
    )


ERROR_CASE = re.compile(rf"case\s+(?P<code>{IDENTIFIER})\s*:\s*return\s+(?P<message>{_MESSAGE})\s*;")
