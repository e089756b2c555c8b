import ast
import re
from typing import Callable, Optional

_TOKEN = re.compile(
    r"(?P<string>\"(?:[^\"\\]|\\.)*\")"
    r"|(?P<number>(?:0[xX][0-9A-Fa-f]+|\d+\.\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|\d+(?:[eE][+-]?\d+)?)"
    r"[uUlLfF]*)"
    r"|(?P<identifier>[A-Za-z_]\w*)"
    r"|(?P<other>.)",
    re.DOTALL
)
_OCTAL = re.compile(r"0[0-7]+")


class ExpressionError(ValueError):
    pass


def _translate_number(token: str) -> str:
    if token[:2].lower() == "0x":
        return token.rstrip("uUlL")
    digits = token.rstrip("uUlLfF")
    if _OCTAL.fullmatch(digits):
        return "0o" + digits[1:]
    return digits


def _is_floating(token: str) -> bool:
    if token[:2].lower() == "0x":
        return False
    return "." in token or "e" in token.lower() or token[-1] in "fF"


def translate_expression(text: str, qualify: Callable[[str], str] = lambda name: name) -> str:
    """
    Rewrites a C constant expression as the equivalent Python expression: literal suffixes are dropped, octal
    literals get the 0o prefix and every identifier is passed through `qualify`. Division of integer expressions
    becomes floor division, all other operators are kept as they are.
    """
    tokens = list(_TOKEN.finditer(text))
    integral = not any(_is_floating(token.group("number")) for token in tokens if token.group("number") is not None)
    translated = []
    for token in tokens:
        if token.group("number") is not None:
            translated.append(_translate_number(token.group("number")))
        elif token.group("identifier") is not None:
            translated.append(qualify(token.group("identifier")))
        elif token.group(0) == "/" and integral:
            translated.append("//")
        else:
            translated.append(token.group(0))
    result = "".join(translated).strip()
    try:
        ast.parse(result, mode="eval")
    except SyntaxError as error:
        raise ExpressionError(f"{text!r} is not a valid Python expression") from error
    return result


_BINARY_OPERATORS: dict[type, Callable[[int, int], int]] = {
    ast.Add: lambda left, right: left + right,
    ast.Sub: lambda left, right: left - right,
    ast.Mult: lambda left, right: left * right,
    ast.LShift: lambda left, right: left << right,
    ast.RShift: lambda left, right: left >> right,
    ast.BitOr: lambda left, right: left | right,
    ast.BitAnd: lambda left, right: left & right,
    ast.BitXor: lambda left, right: left ^ right,
}


class IntegerEvaluator:
    """Best effort evaluation of integer constant expressions, None whenever the value is not an int."""
    _resolve: Callable[[str], Optional[int]]

    def __init__(self, resolve: Callable[[str], Optional[int]] = lambda name: None):
        self._resolve = resolve

    def evaluate(self, text: str) -> Optional[int]:
        try:
            tree = ast.parse(translate_expression(text), mode="eval")
        except ExpressionError:
            return None
        return self._evaluate(tree.body)

    def _evaluate(self, node: ast.AST) -> Optional[int]:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, int) and not isinstance(node.value, bool):
                return node.value
            return None
        elif isinstance(node, ast.Name):
            return self._resolve(node.id)
        elif isinstance(node, ast.UnaryOp):
            operand = self._evaluate(node.operand)
            if operand is None:
                return None
            if isinstance(node.op, ast.USub):
                return -operand
            elif isinstance(node.op, ast.UAdd):
                return operand
            elif isinstance(node.op, ast.Invert):
                return ~operand
            return None
        elif isinstance(node, ast.BinOp):
            left = self._evaluate(node.left)
            right = self._evaluate(node.right)
            if left is None or right is None:
                return None
            if isinstance(node.op, (ast.Div, ast.FloorDiv, ast.Mod)):
                if right == 0:
                    return None
                # C truncates towards zero
                quotient = abs(left) // abs(right) * (1 if (left < 0) == (right < 0) else -1)
                return quotient if not isinstance(node.op, ast.Mod) else left - quotient * right
            if isinstance(node.op, (ast.LShift, ast.RShift)) and right < 0:
                return None
            operator = _BINARY_OPERATORS.get(type(node.op))
            return operator(left, right) if operator is not None else None
        return None
