from bisect import bisect_right

from bindingerrors import SourceLocation


def blank_comments(text: str) -> str:
    """
    Replaces every /* */ and // comment by spaces. Newlines inside block comments are kept and string literals are
    left untouched, so offsets, lines and columns of the result are the ones of the input.
    """
    result = []
    index = 0
    length = len(text)
    while index < length:
        character = text[index]
        if character == '"':
            end = index + 1
            while end < length and text[end] != '"' and text[end] != "\n":
                end += 2 if text[end] == "\\" else 1
            end = min(end + 1, length)
            result.append(text[index:end])
            index = end
        elif text.startswith("/*", index):
            end = text.find("*/", index + 2)
            end = length if end == -1 else end + 2
            result.append("".join("\n" if it == "\n" else " " for it in text[index:end]))
            index = end
        elif text.startswith("//", index):
            end = text.find("\n", index)
            end = length if end == -1 else end
            result.append(" " * (end - index))
            index = end
        else:
            result.append(character)
            index += 1
    return "".join(result)


class SourceText:
    file: str
    original: str
    text: str
    _line_starts: list[int]

    def __init__(self, text: str, file: str = "<string>"):
        self.file = file
        self.original = text.replace("\r\n", "\n")
        self.text = blank_comments(self.original)
        self._line_starts = [0] + [index + 1 for index, character in enumerate(self.text) if character == "\n"]

    def line_and_column(self, offset: int) -> tuple[int, int]:
        line = bisect_right(self._line_starts, offset)
        return line, offset - self._line_starts[line - 1] + 1

    def location(self, offset: int) -> SourceLocation:
        line, column = self.line_and_column(offset)
        return SourceLocation(self.file, line, column)

    def skip_whitespace(self, offset: int) -> int:
        while offset < len(self.text) and self.text[offset].isspace():
            offset += 1
        return offset

    def at_end(self, offset: int) -> bool:
        return offset >= len(self.text)
