from headergrammar.dialects import Dialect, HEADER_DIALECTS, DIALECT_PRODUCTIONS, productions_of
from headergrammar.extractor import DeclarationExtractor, extract
from headergrammar.productions import RawNode
from headergrammar.source import SourceText


def dialect_for_header(file_name: str) -> Dialect:
    dialect = HEADER_DIALECTS.get(file_name)
    if dialect is None:
        raise KeyError(f"No dialect known for header {file_name}")
    return dialect
