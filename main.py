import argparse
import logging
import os.path
import sys
from pathlib import Path

from bindingerrors import BindingError
from bindinggenerator.generator import EmitterConfig
from headergrammar import HEADER_DIALECTS, dialect_for_header
from linker import LinkerConfig
from pipeline import SourceFile, load, write, translate_all, link_and_emit

HEADER_ORDER = list(HEADER_DIALECTS.keys())


class PathAction(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):
        if isinstance(values, list):
            setattr(namespace, self.dest, [os.path.expanduser(value) for value in values])
        else:
            setattr(namespace, self.dest, os.path.expanduser(values))


def dir_path(path):
    if os.path.isdir(os.path.expanduser(path)):
        return path
    else:
        raise argparse.ArgumentTypeError(f"{path} is not a valid path")


def header_file(file: str):
    if not (os.path.isfile(os.path.expanduser(file)) and file.endswith(".h")):
        raise argparse.ArgumentTypeError(f"{file} is not a valid header (.h) file")
    if Path(file).name not in HEADER_DIALECTS:
        raise argparse.ArgumentTypeError(
            f"{file} is not a known header, expected one of {', '.join(HEADER_ORDER)}")
    return file


def _header_order(header: str) -> int:
    return HEADER_ORDER.index(Path(header).name)


def generate_bindings(
        headers: list[str],
        output_path: str,
        linker_config: LinkerConfig,
        emitter_config: EmitterConfig,
        jobs=None
):
    headers = sorted(headers, key=_header_order)
    sources = [SourceFile(file=header, dialect=dialect_for_header(Path(header).name), text=load(header))
               for header in headers]

    print(f"Parsing {len(sources)} headers")
    sequences = translate_all(sources, max_workers=jobs)

    print("Linking and generating bindings")
    modules = link_and_emit(sequences, linker_config, emitter_config)
    for name, text in modules.items():
        write(os.path.join(output_path, name), text)
    print(f"Wrote {', '.join(modules.keys())} to {output_path}")


def run(argv=None):
    parser = argparse.ArgumentParser(
        description='Generate python ctypes bindings from the FMOD C headers.'
    )
    parser.add_argument(dest='headers', nargs='+', type=header_file, action=PathAction)
    parser.add_argument(dest='output_path', action='store', type=dir_path)
    parser.add_argument('--complete-opaque-types', dest='complete_opaque_types', action='store_true', default=False,
                        help='let a structure definition complete an opaque type of the same name')
    parser.add_argument('--fixed-arity-variadics', dest='fixed_arity_variadics', action='store_true', default=False,
                        help='emit variadic callbacks with their fixed arguments only')
    parser.add_argument('--no-macros', dest='emit_macros', action='store_false', default=True,
                        help='do not emit function like macros as comments')
    parser.add_argument('--no-wrappers', dest='no_wrappers', action='store_true', default=False,
                        help='do not emit the module of checked wrapper classes')
    parser.add_argument('-j', '--jobs', dest='jobs', action='store', type=int, default=None)
    parser.add_argument('-v', '--verbose', dest='verbose', action='count', default=0)

    arguments = parser.parse_args(sys.argv[1:] if argv is None else argv)

    logging.basicConfig(
        level=logging.WARNING - 10 * min(arguments.verbose, 2),
        format="%(levelname)s %(name)s: %(message)s"
    )

    names = [Path(header).name for header in arguments.headers]
    duplicates = sorted(set(name for name in names if names.count(name) > 1))
    if len(duplicates) > 0:
        parser.error(f"headers given more than once: {', '.join(duplicates)}")

    try:
        generate_bindings(
            arguments.headers,
            os.path.expanduser(arguments.output_path),
            LinkerConfig(complete_opaque_types=arguments.complete_opaque_types),
            EmitterConfig(emit_macros=arguments.emit_macros,
                          fixed_arity_variadics=arguments.fixed_arity_variadics,
                          wrapper_module=None if arguments.no_wrappers else "wrappers"),
            jobs=arguments.jobs
        )
    except BindingError as error:
        print(error.describe(), file=sys.stderr)
        return 1
    except UnicodeDecodeError as error:
        print(f"decode error: {error}", file=sys.stderr)
        return 1
    print("Done generating bindings")
    return 0


if __name__ == '__main__':
    sys.exit(run())
