import logging
from typing import Optional

from bindingerrors import ParseError
from headergrammar.dialects import Dialect, productions_of, production_names
from headergrammar.productions import RawNode, Production
from headergrammar.source import SourceText

logger = logging.getLogger(__name__)

DISCARDED_PRODUCTIONS = {"Directive"}


class DeclarationExtractor:
    _dialect: Dialect
    _productions: tuple[Production, ...]

    def __init__(self, dialect: Dialect):
        self._dialect = dialect
        self._productions = productions_of(dialect)

    def extract(self, source: SourceText) -> list[RawNode]:
        nodes: list[RawNode] = []
        offset = source.skip_whitespace(0)
        while not source.at_end(offset):
            node = self._match_first(source, offset)
            if node is None:
                line, column = source.line_and_column(offset)
                raise ParseError(source.file, line, column, production_names(self._dialect))
            if node.production not in DISCARDED_PRODUCTIONS:
                nodes.append(node)
            offset = source.skip_whitespace(node.end)
        logger.debug(f"Extracted {len(nodes)} declarations from {source.file}")
        return nodes

    def _match_first(self, source: SourceText, offset: int) -> Optional[RawNode]:
        for production in self._productions:
            node = production.match(source, offset)
            if node is not None:
                return node
        return None


def extract(dialect: Dialect, text: str, file: str = "<string>") -> list[RawNode]:
    return DeclarationExtractor(dialect).extract(SourceText(text, file))
