import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional

from astparser.model import DeclarationSequence
from astparser.parser import AstBuilder
from bindinggenerator.generator import PythonBindingFileGenerator, EmitterConfig
from bindinggenerator.writer import PythonBindingWriter, CtypesMapper, FileOutput, render, render_package_init
from headergrammar import Dialect, DeclarationExtractor, SourceText
from linker import Linker, LinkerConfig

logger = logging.getLogger(__name__)

PACKAGE_INIT = "__init__.py"


@dataclass(frozen=True)
class SourceFile:
    file: str
    dialect: Dialect
    text: str


def load(path: str) -> str:
    with open(path, "r", encoding="utf-8") as file:
        return file.read()


def write(path: str, text: str):
    output = FileOutput(path)
    output.write(text)
    output.close()


def translate(dialect: Dialect, text: str, file: str = "<string>") -> DeclarationSequence:
    """Parses one header of the given dialect, raises ParseError on the first input no production matches."""
    source = SourceText(text, file)
    nodes = DeclarationExtractor(dialect).extract(source)
    return AstBuilder(dialect, source).build(nodes)


def _translate_source(source: SourceFile) -> DeclarationSequence:
    logger.debug(f"Translating {source.file} as {source.dialect.value}")
    return translate(source.dialect, source.text, source.file)


def translate_all(sources: Iterable[SourceFile], max_workers: Optional[int] = None) -> list[DeclarationSequence]:
    """
    Translates every source on its own worker. Results keep the order of `sources`; if several files fail the error
    of the first one in that order is raised.
    """
    sources = list(sources)
    if max_workers is None:
        max_workers = os.cpu_count() or 1
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(sources) or 1))) as executor:
        futures = [executor.submit(_translate_source, source) for source in sources]
        return [future.result() for future in futures]


def link_and_emit(
        sequences: Iterable[DeclarationSequence],
        linker_config: Optional[LinkerConfig] = None,
        emitter_config: Optional[EmitterConfig] = None
) -> dict[str, str]:
    linked = Linker(linker_config).link(sequences)
    binding_files = PythonBindingFileGenerator(emitter_config).generate(linked)
    writer = PythonBindingWriter(CtypesMapper())
    modules = {binding_file.name: render(binding_file, writer) for binding_file in binding_files}
    modules[PACKAGE_INIT] = render_package_init(binding_files)
    return modules
