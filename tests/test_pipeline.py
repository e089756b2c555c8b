import io
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

import main
from bindingerrors import ParseError
from bindinggenerator.generator import EmitterConfig
from headergrammar import Dialect
from linker import link
from pipeline import SourceFile, translate, translate_all, link_and_emit, load, write
from tests.samples import COMMON_HEADER, DSP_HEADER, STUDIO_COMMON_HEADER, STUDIO_HEADER, ERRORS_HEADER

SOURCES = [
    SourceFile("fmod_common.h", Dialect.CORE_COMMON, COMMON_HEADER),
    SourceFile("fmod_dsp.h", Dialect.CORE_DSP, DSP_HEADER),
    SourceFile("fmod_studio_common.h", Dialect.STUDIO_COMMON, STUDIO_COMMON_HEADER),
    SourceFile("fmod_studio.h", Dialect.STUDIO, STUDIO_HEADER),
    SourceFile("fmod_errors.h", Dialect.ERROR_TABLE, ERRORS_HEADER),
]


class TranslateAllTests(unittest.TestCase):
    def test_results_keep_input_order(self):
        sequences = translate_all(SOURCES, max_workers=4)
        self.assertEqual([source.file for source in SOURCES], [sequence.file for sequence in sequences])
        self.assertEqual(translate(Dialect.CORE_COMMON, COMMON_HEADER, "fmod_common.h"), sequences[0])

    def test_single_worker(self):
        self.assertEqual(translate_all(SOURCES, max_workers=4), translate_all(SOURCES, max_workers=1))

    def test_no_sources(self):
        self.assertEqual([], translate_all([]))

    def test_first_failing_file_is_reported(self):
        sources = [
            SOURCES[0],
            SourceFile("fmod_codec.h", Dialect.CORE_CODEC, "typedef struct FMOD_CODEC_STATE FMOD_CODEC_STATE;\n@"),
            SourceFile("fmod_output.h", Dialect.CORE_OUTPUT, "$"),
        ]
        with self.assertRaises(ParseError) as context:
            translate_all(sources)
        self.assertEqual("fmod_codec.h", context.exception.file)
        self.assertEqual((2, 1), (context.exception.line, context.exception.column))


class LinkAndEmitTests(unittest.TestCase):
    def test_output_is_deterministic(self):
        first = link_and_emit(translate_all(SOURCES), emitter_config=EmitterConfig(fixed_arity_variadics=True))
        second = link_and_emit(translate_all(SOURCES, max_workers=1),
                               emitter_config=EmitterConfig(fixed_arity_variadics=True))
        self.assertEqual(first, second)

    def test_link_is_logged(self):
        with self.assertLogs("linker", level="INFO") as logs:
            link(translate_all(SOURCES[:1]))
        self.assertTrue(any("Linked" in message for message in logs.output))


class FileTests(unittest.TestCase):
    def test_write_and_load(self):
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "core.py")
            write(path, "a = 1\nb = 2\n")
            with open(path, "rb") as file:
                self.assertEqual(b"a = 1\nb = 2\n", file.read())
            self.assertEqual("a = 1\nb = 2\n", load(path))

    def test_load_rejects_invalid_utf8(self):
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "fmod_common.h")
            with open(path, "wb") as file:
                file.write(b"#define FMOD_NAME \"\xff\"\n")
            with self.assertRaises(UnicodeDecodeError):
                load(path)


class CommandLineTests(unittest.TestCase):
    def setUp(self):
        self._directory = tempfile.TemporaryDirectory()
        self.directory = self._directory.name
        self.output = os.path.join(self.directory, "fmod")
        os.mkdir(self.output)

    def tearDown(self):
        self._directory.cleanup()

    def _header(self, name, text):
        path = os.path.join(self.directory, name)
        with open(path, "w", encoding="utf-8") as file:
            file.write(text)
        return path

    def _run(self, *arguments):
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main.run(list(arguments))
        return code, stdout.getvalue(), stderr.getvalue()

    def _read(self, name):
        with open(os.path.join(self.output, name), "rb") as file:
            return file.read()

    def test_generates_modules(self):
        errors = self._header("fmod_errors.h", ERRORS_HEADER)
        common = self._header("fmod_common.h", COMMON_HEADER)
        code, stdout, _ = self._run(errors, common, self.output)
        self.assertEqual(0, code)
        self.assertIn("Parsing 2 headers", stdout)
        self.assertEqual(["__init__.py", "core.py", "errors.py"], sorted(os.listdir(self.output)))
        self.assertIn(b"from .core import FMOD_RESULT", self._read("errors.py"))

    def test_runs_are_byte_identical(self):
        headers = [self._header("fmod_common.h", COMMON_HEADER), self._header("fmod_dsp.h", DSP_HEADER)]
        self.assertEqual(0, self._run(*headers, self.output, "--fixed-arity-variadics")[0])
        first = {name: self._read(name) for name in os.listdir(self.output)}
        self.assertEqual(0, self._run(*headers, self.output, "--fixed-arity-variadics", "-j", "1")[0])
        second = {name: self._read(name) for name in os.listdir(self.output)}
        self.assertEqual(first, second)

    def test_binding_errors_are_reported(self):
        headers = [self._header("fmod_common.h", COMMON_HEADER), self._header("fmod_dsp.h", DSP_HEADER)]
        code, _, stderr = self._run(*headers, self.output)
        self.assertEqual(1, code)
        self.assertIn("unsupported construct", stderr)
        self.assertIn("FMOD_DSP_LOG_FUNC", stderr)

    def test_parse_errors_are_reported(self):
        header = self._header("fmod_output.h", "typedef struct FMOD_OUTPUT_STATE FMOD_OUTPUT_STATE;\n\nint x;\n")
        code, _, stderr = self._run(header, self.output)
        self.assertEqual(1, code)
        self.assertIn("parse error", stderr)
        self.assertIn("fmod_output.h:3:1", stderr)

    def test_undecodable_header_is_reported(self):
        header = os.path.join(self.directory, "fmod_common.h")
        with open(header, "wb") as file:
            file.write(b"/* \xe9 */\n")
        code, _, stderr = self._run(header, self.output)
        self.assertEqual(1, code)
        self.assertIn("decode error", stderr)
        self.assertEqual([], os.listdir(self.output))

    def test_wrappers_can_be_omitted(self):
        headers = [self._header("fmod_common.h", COMMON_HEADER),
                   self._header("fmod_studio_common.h", STUDIO_COMMON_HEADER),
                   self._header("fmod_studio.h", STUDIO_HEADER)]
        self.assertEqual(0, self._run(*headers, self.output)[0])
        self.assertIn("wrappers.py", os.listdir(self.output))
        for name in os.listdir(self.output):
            os.remove(os.path.join(self.output, name))
        self.assertEqual(0, self._run(*headers, self.output, "--no-wrappers")[0])
        self.assertEqual(["__init__.py", "core.py", "studio.py"], sorted(os.listdir(self.output)))

    def test_unknown_header_is_rejected(self):
        header = self._header("stdio.h", "")
        with self.assertRaises(SystemExit):
            self._run(header, self.output)

    def test_duplicate_header_is_rejected(self):
        header = self._header("fmod_common.h", COMMON_HEADER)
        with self.assertRaises(SystemExit):
            self._run(header, header, self.output)
