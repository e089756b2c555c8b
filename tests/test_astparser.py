import unittest

from astparser.model import OpaqueType, TypeAlias, Flags, Enumeration, Enumerator, Structure, Field, \
    Function, Argument, Preset, ErrorMapping, ErrorEntry, Constant, Macro
from astparser.types import FundamentalType, Pointer, UserTypeRef, RawExpr
from bindingerrors import ParseError
from headergrammar import Dialect
from pipeline import translate
from tests.samples import COMMON_HEADER, DSP_HEADER, STUDIO_HEADER, ERRORS_HEADER


def _by_name(sequence):
    return {declaration.name: declaration for declaration in sequence.declarations}


class CommonHeaderTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.sequence = translate(Dialect.CORE_COMMON, COMMON_HEADER, "fmod_common.h")
        cls.declarations = _by_name(cls.sequence)

    def test_sequence_identity(self):
        self.assertEqual("fmod_common.h", self.sequence.file)
        self.assertEqual(Dialect.CORE_COMMON, self.sequence.dialect)
        for declaration in self.sequence.declarations:
            self.assertEqual(Dialect.CORE_COMMON, declaration.dialect)
            self.assertEqual("fmod_common.h", declaration.location.file)

    def test_opaque_type(self):
        self.assertEqual(OpaqueType("FMOD_SYSTEM", alias_name="FMOD_SYSTEM", tag_name="FMOD_SYSTEM"),
                         self.declarations["FMOD_SYSTEM"])

    def test_type_alias(self):
        self.assertEqual(TypeAlias("FMOD_PORT_INDEX", base_type=FundamentalType.UNSIGNED_LONG_LONG),
                         self.declarations["FMOD_PORT_INDEX"])

    def test_version_is_a_macro(self):
        version = self.declarations["FMOD_VERSION"]
        self.assertIsInstance(version, Macro)
        self.assertEqual("0x00020203", version.raw_body)

    def test_flags(self):
        flags = self.declarations["FMOD_DEBUG_FLAGS"]
        self.assertIsInstance(flags, Flags)
        self.assertEqual(FundamentalType.UNSIGNED_INT, flags.underlying)
        self.assertEqual(["FMOD_DEBUG_LEVEL_NONE", "FMOD_DEBUG_LEVEL_ERROR", "FMOD_DEBUG_LEVEL_WARNING",
                          "FMOD_DEBUG_LEVEL_LOG"], [entry.name for entry in flags.entries])
        self.assertEqual(RawExpr("0x00000000"), flags.entries[0].value)

    def test_structure_of_fundamental_fields(self):
        self.assertEqual(
            Structure(
                "FMOD_VECTOR",
                fields=(Field("x", FundamentalType.FLOAT, Pointer.NONE, False, None),
                        Field("y", FundamentalType.FLOAT, Pointer.NONE, False, None),
                        Field("z", FundamentalType.FLOAT, Pointer.NONE, False, None)),
                union_fields=None,
                trailing_alias="FMOD_VECTOR",
                tag_name="FMOD_VECTOR"
            ),
            self.declarations["FMOD_VECTOR"]
        )

    def test_structure_fields(self):
        fields = {field.name: field for field in self.declarations["FMOD_LISTENERS"].fields}
        self.assertEqual(["numlisteners", "relative", "sound", "valuenames", "fileopen"], list(fields.keys()))
        self.assertEqual(Field("relative", UserTypeRef("FMOD_3D_ATTRIBUTES"), Pointer.NONE, False,
                               "FMOD_MAX_LISTENERS"), fields["relative"])
        self.assertEqual(Field("sound", UserTypeRef("FMOD_SOUND"), Pointer.SINGLE, False, None), fields["sound"])
        self.assertEqual(Field("valuenames", FundamentalType.CHAR, Pointer.DOUBLE, True, None),
                         fields["valuenames"])
        self.assertEqual(UserTypeRef("FMOD_FILE_OPEN_CALLBACK"), fields["fileopen"].base_type)

    def test_numeric_array_length(self):
        data = self.declarations["FMOD_GUID"].fields[-1]
        self.assertEqual(("Data4", FundamentalType.UNSIGNED_CHAR, "8"), (data.name, data.base_type, data.array_len))

    def test_enumeration(self):
        result = self.declarations["FMOD_RESULT"]
        self.assertIsInstance(result, Enumeration)
        self.assertEqual("FMOD_RESULT", result.tag_name)
        self.assertEqual(Enumerator("FMOD_OK"), result.entries[0])
        self.assertEqual(Enumerator("FMOD_ERR_FILE_NOTFOUND", RawExpr("18")), result.entries[3])
        self.assertEqual([0, 1, 2, 18, 19, 65536], result.effective_values())

    def test_enumeration_negative_values(self):
        self.assertEqual([-1, 0, 1, 2, 65536], self.declarations["FMOD_SPEAKER"].effective_values())

    def test_callback_returning_pointer(self):
        callback = self.declarations["FMOD_MEMORY_ALLOC_CALLBACK"]
        self.assertEqual(FundamentalType.VOID, callback.return_type)
        self.assertEqual(Pointer.SINGLE, callback.return_pointer)
        self.assertEqual(("size", "type", "sourcestr"), tuple(argument.name for argument in callback.args))
        self.assertFalse(callback.is_variadic)

    def test_callback_arguments(self):
        callback = self.declarations["FMOD_FILE_OPEN_CALLBACK"]
        self.assertEqual(UserTypeRef("FMOD_RESULT"), callback.return_type)
        self.assertEqual(
            (Argument("name", FundamentalType.CHAR, Pointer.SINGLE, True),
             Argument("filesize", FundamentalType.UNSIGNED_INT, Pointer.SINGLE, False),
             Argument("handle", FundamentalType.VOID, Pointer.DOUBLE, False),
             Argument("userdata", FundamentalType.VOID, Pointer.SINGLE, False)),
            callback.args
        )

    def test_presets(self):
        preset = self.declarations["FMOD_PRESET_OFF"]
        self.assertIsInstance(preset, Preset)
        self.assertEqual(12, len(preset.values))
        self.assertEqual(RawExpr("1000"), preset.values[0])
        self.assertEqual(RawExpr("-80.0f"), preset.values[-1])

    def test_constants(self):
        self.assertEqual(Constant("FMOD_MAX_LISTENERS", value=RawExpr("8")), self.declarations["FMOD_MAX_LISTENERS"])


class DspHeaderTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.declarations = _by_name(translate(Dialect.CORE_DSP, DSP_HEADER, "fmod_dsp.h"))

    def test_trailing_union(self):
        description = self.declarations["FMOD_DSP_PARAMETER_DESC"]
        self.assertEqual(["type", "name", "label", "description"], [field.name for field in description.fields])
        self.assertEqual(["floatdesc", "intdesc"], [field.name for field in description.union_fields])
        self.assertEqual(UserTypeRef("FMOD_DSP_PARAMETER_DESC_INT"), description.union_fields[1].base_type)

    def test_char_array(self):
        name = self.declarations["FMOD_DSP_PARAMETER_DESC"].fields[1]
        self.assertEqual((FundamentalType.CHAR, Pointer.NONE, "16"), (name.base_type, name.pointer, name.array_len))

    def test_anonymous_enumeration(self):
        enumeration = self.declarations["FMOD_DSP_PARAMETER_TYPE"]
        self.assertIsNone(enumeration.tag_name)
        self.assertEqual(4, len(enumeration.entries))
        self.assertEqual([0, 1, 2, 3], enumeration.effective_values())

    def test_variadic_callback(self):
        log = self.declarations["FMOD_DSP_LOG_FUNC"]
        self.assertTrue(log.is_variadic)
        self.assertEqual(5, len(log.args))
        self.assertEqual(UserTypeRef("FMOD_DEBUG_FLAGS"), log.args[0].base_type)

    def test_function_like_macro(self):
        macro = self.declarations["FMOD_DSP_INIT_PARAMDESC_FLOAT"]
        self.assertIsInstance(macro, Macro)
        self.assertTrue(macro.raw_body.startswith("(_paramstruct, _name"))


class FunctionTests(unittest.TestCase):
    def test_functions(self):
        declarations = _by_name(translate(Dialect.STUDIO, STUDIO_HEADER, "fmod_studio.h"))
        create = declarations["FMOD_Studio_System_Create"]
        self.assertIsInstance(create, Function)
        self.assertEqual(UserTypeRef("FMOD_RESULT"), create.return_type)
        self.assertEqual(
            (Argument("system", UserTypeRef("FMOD_STUDIO_SYSTEM"), Pointer.DOUBLE, False),
             Argument("headerversion", FundamentalType.UNSIGNED_INT, Pointer.NONE, False)),
            create.args
        )
        self.assertEqual(UserTypeRef("FMOD_BOOL"), declarations["FMOD_Studio_System_IsValid"].return_type)

    def test_void_parameter_list(self):
        sequence = translate(Dialect.CORE, "unsigned int F_API FMOD_Thread_Count(void);", "fmod.h")
        function = sequence.declarations[0]
        self.assertEqual((), function.args)
        self.assertEqual(FundamentalType.UNSIGNED_INT, function.return_type)

    def test_unnamed_parameters(self):
        sequence = translate(Dialect.CORE, "FMOD_RESULT F_API FMOD_Memory_GetStats(int *, int *, FMOD_BOOL);",
                             "fmod.h")
        self.assertEqual([None, None, None], [argument.name for argument in sequence.declarations[0].args])

    def test_variadic_function_is_rejected(self):
        with self.assertRaises(ParseError):
            translate(Dialect.CORE, "FMOD_RESULT F_API FMOD_Log(const char *format, ...);", "fmod.h")


class ErrorTableTests(unittest.TestCase):
    def test_error_mapping(self):
        sequence = translate(Dialect.ERROR_TABLE, ERRORS_HEADER, "fmod_errors.h")
        self.assertEqual(1, len(sequence.declarations))
        mapping = sequence.declarations[0]
        self.assertIsInstance(mapping, ErrorMapping)
        self.assertEqual("FMOD_ErrorString", mapping.name)
        self.assertEqual(ErrorEntry("FMOD_OK", "No errors."), mapping.entries[0])
        self.assertEqual(["FMOD_OK", "FMOD_ERR_BADCOMMAND", "FMOD_ERR_FILE_NOTFOUND"],
                         [entry.code for entry in mapping.entries])


class StructureErrorTests(unittest.TestCase):
    def test_union_must_be_last(self):
        text = ("typedef struct FMOD_BROKEN\n"
                "{\n"
                "    union\n"
                "    {\n"
                "        int a;\n"
                "        float b;\n"
                "    };\n"
                "    int c;\n"
                "} FMOD_BROKEN;\n")
        with self.assertRaises(ParseError) as context:
            translate(Dialect.CORE_OUTPUT, text, "fmod_output.h")
        self.assertEqual(1, context.exception.line)

    def test_syntax_error_is_reported_in_header_coordinates(self):
        text = "\n\ntypedef struct FMOD_BROKEN\n{\n    int a b;\n} FMOD_BROKEN;\n"
        with self.assertRaises(ParseError) as context:
            translate(Dialect.CORE_OUTPUT, text, "fmod_output.h")
        self.assertEqual("fmod_output.h", context.exception.file)
        self.assertEqual(5, context.exception.line)
        self.assertEqual(("Structure",), context.exception.expected)

    def test_triple_pointer_is_rejected(self):
        text = "typedef struct FMOD_BROKEN { char ***names; } FMOD_BROKEN;"
        with self.assertRaises(ParseError):
            translate(Dialect.CORE_OUTPUT, text, "fmod_output.h")


class EnumerationRuleTests(unittest.TestCase):
    def test_auto_increment(self):
        enumeration = Enumeration("E", tag_name=None, entries=(
            Enumerator("A"), Enumerator("B", RawExpr("5")), Enumerator("C")))
        self.assertEqual([0, 5, 6], enumeration.effective_values())

    def test_unknown_value_propagates(self):
        enumeration = Enumeration("E", tag_name=None, entries=(
            Enumerator("A", RawExpr("OTHER")), Enumerator("B"), Enumerator("C", RawExpr("0x10")), Enumerator("D")))
        self.assertEqual([None, None, 16, 17], enumeration.effective_values())


class RawExprTests(unittest.TestCase):
    def test_as_int(self):
        self.assertEqual(16, RawExpr("0x10").as_int())
        self.assertEqual(8, RawExpr("010").as_int())
        self.assertEqual(-1, RawExpr("-1").as_int())
        self.assertEqual(65536, RawExpr("(65536u)").as_int())
        self.assertIsNone(RawExpr("1 << 4").as_int())

    def test_identifiers(self):
        self.assertEqual(["FMOD_A", "FMOD_B"], RawExpr("(FMOD_A | FMOD_B | FMOD_A)").identifiers())
        self.assertEqual([], RawExpr("\"FMOD_NAME\"").identifiers())
        self.assertEqual([], RawExpr("-80.0f").identifiers())
        self.assertEqual([], RawExpr("0x0000FFFFu").identifiers())
