import os.path
from typing import IO

from bindinggenerator.model import BindingFile, Import, Element, Definition, Enum, CtypeStructDefinition, \
    CtypeStructDeclaration, CtypeFieldPointer, CtypeFieldType, NamedCtypeFieldType, PrimitiveCtypeFieldType, \
    CtypeFieldTypeArray, CtypeStructField, OpaqueStructDefinition, ConstantDefinition, PresetDefinition, \
    MacroComment, FunctionPrototype, LibraryLoader, LibraryFunction, ErrorLookup, ErrorClass, \
    HandleClass, WrapperFunction


class Output:
    def write(self, text: str):
        pass

    def new_line(self):
        pass

    def close(self):
        pass


class StringOutput(Output):
    def __init__(self):
        self.__parts: list[str] = []

    def write(self, text: str):
        self.__parts.append(text)

    def new_line(self):
        self.write("\n")

    def getvalue(self) -> str:
        return "".join(self.__parts)


class FileOutput(Output):
    __file: IO = None

    def __init__(self, file: str):
        self.__file = open(file, "w", encoding="utf-8", newline="\n")

    def write(self, text: str):
        self.__file.write(text)

    def new_line(self):
        self.write("\n")

    def close(self):
        self.__file.close()


class IndentableOutput(Output):
    __output: Output
    __needs_indent: bool = False
    indent_pattern: str
    __indent_depth: int = 0

    def __init__(self, output: Output, indent: str):
        self.__output = output
        self.indent_pattern = indent

    def indent(self, by: int = 1):
        self.__indent_depth += by

    def deindent(self, by: int = 1):
        self.__indent_depth -= by

    def write(self, text: str):
        if self.__needs_indent:
            self._do_indent()
            self.__needs_indent = False
        self.__output.write(text)

    def new_line(self):
        self.__output.new_line()
        self.__needs_indent = True

    def close(self):
        self.__output.close()

    def _do_indent(self):
        for x in range(self.__indent_depth):
            self.__output.write(self.indent_pattern)


class CtypesMapper:
    _POINTER_PATTERN = """ctypes.POINTER({0})"""
    _ARRAY_PATTERN = """({0} * {1})"""
    _PRIMITIVE_PATTERN = """ctypes.{0}"""

    def get_mapping(self, typ: CtypeFieldType) -> str:
        if isinstance(typ, PrimitiveCtypeFieldType):
            if typ.ctype is None:
                return "None"
            return self._PRIMITIVE_PATTERN.format(typ.ctype)
        elif isinstance(typ, NamedCtypeFieldType):
            return typ.name
        elif isinstance(typ, CtypeFieldPointer):
            return self._POINTER_PATTERN.format(self.get_mapping(typ.of))
        elif isinstance(typ, CtypeFieldTypeArray):
            return self._ARRAY_PATTERN.format(self.get_mapping(typ.of), typ.size)
        else:
            raise Exception(f"Unhandled case {typ}")

    def get_mappings(self, types: tuple[CtypeFieldType, ...]) -> str:
        return ", ".join(self.get_mapping(typ) for typ in types)


class BaseWriter:
    _INDENT = "    "
    _IMPORT_PATTERN = "import {1}"
    _IMPORT_WITH_PATH_PATTERN = "from {0} import {1}"

    _mapper: CtypesMapper = None

    def __init__(self, ctypes_mapper: CtypesMapper):
        self._mapper = ctypes_mapper

    def _write_import(self, imprt: Import, output: Output):
        pattern = self._IMPORT_PATTERN
        if imprt.path is not None:
            pattern = self._IMPORT_WITH_PATH_PATTERN
        output.write(pattern.format(imprt.path, ", ".join(imprt.imports)))
        output.new_line()

    def _write_lines(self, lines: list[str], output: Output):
        for line in lines:
            output.write(line)
            output.new_line()


class PythonBindingWriter(BaseWriter):
    __HEADER_PATTERN = "# Generated by fmod-bindgen from {0}. Do not edit."
    __CTYPES_IMPORT = Import(None, ("ctypes",))
    __PLATFORM_IMPORT = Import(None, ("platform",))
    __ENUM_IMPORT = Import("enum", ("IntEnum",))
    __FUNCTYPE_LINE = """_FUNCTYPE = ctypes.WINFUNCTYPE if platform.system() == "Windows" else ctypes.CFUNCTYPE"""
    __LOADER_BLOCK_LINES = ["def _load_library(name):",
                            """    if platform.system() == "Linux":""",
                            """        return ctypes.cdll.LoadLibrary(f"lib{name}.so")""",
                            """    elif platform.system() == "Darwin":""",
                            """        return ctypes.cdll.LoadLibrary(f"lib{name}.dylib")""",
                            """    elif platform.system() == "Windows":""",
                            """        return ctypes.windll.LoadLibrary(f"{name}.dll")""",
                            """    else:""",
                            """        raise Exception("System Not Supported")"""
                            ]
    __PASS = "pass"
    __DEFINITION_PATTERN = "{0} = {1}"
    __PRESET_PATTERN = "{0} = ({1})"
    __MACRO_PATTERN = "# {0}"
    __ENUM_DECLARATION_PATTERN = "class {0}(IntEnum):"
    __ENUM_ENTRY_PATTERN = "{0} = {1}"
    __STRUCT_DECLARATION_PATTERN = "class {0}(ctypes.{1}):"
    __STRUCT_ANONYMOUS_PATTERN = "{0}._anonymous_ = ({1})"
    __STRUCT_FIELD_ASSIGNMENT_START = "{0}._fields_ = ["
    __STRUCT_FIELD_ASSIGNMENT_END = "]"
    __STRUCT_FIELD_PATTERN = "('{0}', {1})"
    __CALLBACK_PATTERN = "{0} = _FUNCTYPE({1})"
    __VARIADIC_COMMENT = "# {0} is variadic, only its fixed arguments are described"
    __LOADER_PATTERN = "{0} = _load_library(\"{1}\")"
    __FUNCTION_LINES = ["{0} = {1}.{0}",
                        "{0}.argtypes = [{2}]",
                        "{0}.restype = {3}"]
    __LOOKUP_TABLE_PATTERN = "_{0}_MESSAGES = {{"
    __LOOKUP_ENTRY_PATTERN = "{0}: \"{1}\","
    __LOOKUP_FUNCTION_LINES = ["def {0}(errcode):",
                               "    return _{0}_MESSAGES.get(errcode, \"{1}\")"]
    __ERROR_CLASS_LINES = ["class {0}(Exception):",
                           "    def __init__(self, function, code):",
                           "        self.function = function",
                           "        self.code = code",
                           "        self.message = {1}",
                           "        super().__init__(f\"{{function}} returned {{code}}: {{self.message}}\")"]
    __CHECK_FUNCTION_LINES = ["def _check(function, result):",
                              "    if result != {1}.{2}:",
                              "        raise {0}(function, result)"]
    __HANDLE_CLASS_LINES = ["class {0}:",
                            "    handle_type = {1}",
                            "",
                            "    def __init__(self, pointer):",
                            "        self.pointer = pointer"]
    __STATIC_METHOD = "@staticmethod"
    __WRAPPER_DEFINITION_PATTERN = "def {0}({1}):"
    __CHECKED_CALL_PATTERN = "_check(\"{0}\", {0}({1}))"
    __RETURNED_CALL_PATTERN = "return {0}({1})"
    __HANDLE_ARGUMENT = "self.pointer"

    def write(self, file: BindingFile, output: Output):
        output = IndentableOutput(output, self._INDENT)
        self.__write_header(file, output)

        previous = None
        for element in file.elements:
            if self.__needs_blank_lines(previous, element):
                output.new_line()
                output.new_line()
            elif self.__needs_blank_line(previous, element):
                output.new_line()
            self._write(element, output)
            previous = element

    def __write_header(self, file: BindingFile, output: IndentableOutput):
        sources = ", ".join(os.path.basename(source) for source in file.sources)
        output.write(self.__HEADER_PATTERN.format(sources or "no headers"))
        output.new_line()
        imports = []
        if self.__uses_ctypes(file):
            imports.append(self.__CTYPES_IMPORT)
        if file.uses_callbacks or file.uses_libraries:
            imports.append(self.__PLATFORM_IMPORT)
        if any(isinstance(element, Enum) for element in file.elements):
            imports.append(self.__ENUM_IMPORT)
        for imprt in imports:
            self._write_import(imprt, output)
        if len(file.imports) > 0:
            if len(imports) > 0:
                output.new_line()
            for imprt in file.imports:
                self._write_import(imprt, output)
        if file.uses_callbacks:
            output.new_line()
            output.write(self.__FUNCTYPE_LINE)
            output.new_line()
        if file.uses_libraries:
            output.new_line()
            output.new_line()
            self._write_lines(self.__LOADER_BLOCK_LINES, output)
        if len(file.elements) > 0:
            output.new_line()
            output.new_line()

    @staticmethod
    def __uses_ctypes(file: BindingFile) -> bool:
        plain = (Enum, ConstantDefinition, PresetDefinition, MacroComment, ErrorLookup, ErrorClass, HandleClass,
                 WrapperFunction)
        return file.uses_callbacks or file.uses_libraries \
            or any(not isinstance(element, plain) for element in file.elements)

    @staticmethod
    def __needs_blank_lines(previous: Element, element: Element) -> bool:
        if previous is None:
            return False
        blocks = (Enum, CtypeStructDefinition, OpaqueStructDefinition, ErrorLookup, ErrorClass, HandleClass,
                  WrapperFunction)
        return isinstance(element, blocks) or isinstance(previous, blocks) or isinstance(element, LibraryLoader)

    @staticmethod
    def __needs_blank_line(previous: Element, element: Element) -> bool:
        if previous is None:
            return False
        values = (Definition, ConstantDefinition, PresetDefinition)
        if isinstance(previous, values) and isinstance(element, values):
            return isinstance(element, Definition)
        return type(previous) != type(element) or isinstance(element, (CtypeStructDeclaration, LibraryFunction))

    def _write(self, element: Element, output: IndentableOutput):
        if isinstance(element, OpaqueStructDefinition):
            self.__write_class(element.name, "Structure", output)
        elif isinstance(element, CtypeStructDefinition):
            self.__write_class(element.name, element.base, output)
        elif isinstance(element, Definition):
            output.write(self.__DEFINITION_PATTERN.format(element.name, self.__mapping(element.for_type)))
            output.new_line()
        elif isinstance(element, ConstantDefinition):
            output.write(self.__DEFINITION_PATTERN.format(element.name, element.expression))
            output.new_line()
        elif isinstance(element, PresetDefinition):
            values = ", ".join(element.values) + ("," if len(element.values) == 1 else "")
            output.write(self.__PRESET_PATTERN.format(element.name, values))
            output.new_line()
        elif isinstance(element, MacroComment):
            self.__write_macro(element, output)
        elif isinstance(element, Enum):
            self.__write_enum(element, output)
        elif isinstance(element, FunctionPrototype):
            if element.variadic:
                output.write(self.__VARIADIC_COMMENT.format(element.name))
                output.new_line()
            types = (element.return_type,) + element.parameter_types
            output.write(self.__CALLBACK_PATTERN.format(element.name, self._mapper.get_mappings(types)))
            output.new_line()
        elif isinstance(element, CtypeStructDeclaration):
            self.__write_struct_declaration(element, output)
        elif isinstance(element, LibraryLoader):
            output.write(self.__LOADER_PATTERN.format(element.name, element.library))
            output.new_line()
        elif isinstance(element, LibraryFunction):
            self.__write_function(element, output)
        elif isinstance(element, ErrorLookup):
            self.__write_error_lookup(element, output)
        elif isinstance(element, ErrorClass):
            self.__write_error_class(element, output)
        elif isinstance(element, HandleClass):
            self.__write_handle_class(element, output)
        elif isinstance(element, WrapperFunction):
            self.__write_wrapper(element, output)
        else:
            raise Exception(f"Unhandled element {element}")

    def __write_class(self, name: str, base: str, output: IndentableOutput):
        output.write(self.__STRUCT_DECLARATION_PATTERN.format(name, base))
        output.new_line()
        output.indent()
        output.write(self.__PASS)
        output.deindent()
        output.new_line()

    def __write_macro(self, macro: MacroComment, output: IndentableOutput):
        separator = "" if macro.body.startswith("(") else " "
        lines = f"{macro.name}{separator}{macro.body}".split("\n")
        for line in lines:
            output.write(self.__MACRO_PATTERN.format(line.rstrip()).rstrip())
            output.new_line()

    def __write_enum(self, enum: Enum, output: IndentableOutput):
        output.write(self.__ENUM_DECLARATION_PATTERN.format(enum.name))
        output.new_line()
        output.indent()
        if len(enum.entries) == 0:
            output.write(self.__PASS)
            output.new_line()
        for entry in enum.entries:
            output.write(self.__ENUM_ENTRY_PATTERN.format(entry.name, entry.value))
            output.new_line()
        output.deindent()

    def __write_struct_declaration(self, declaration: CtypeStructDeclaration, output: IndentableOutput):
        if len(declaration.anonymous) > 0:
            names = "".join(f"'{name}', " for name in declaration.anonymous).rstrip()
            output.write(self.__STRUCT_ANONYMOUS_PATTERN.format(declaration.name, names))
            output.new_line()
        output.write(self.__STRUCT_FIELD_ASSIGNMENT_START.format(declaration.name))
        if len(declaration.fields) == 0:
            output.write(self.__STRUCT_FIELD_ASSIGNMENT_END)
            output.new_line()
            return
        output.new_line()
        output.indent()
        for field in declaration.fields[:-1]:
            self.__write_struct_declaration_field(field, output)
            output.write(",")
            output.new_line()
        self.__write_struct_declaration_field(declaration.fields[-1], output)
        output.new_line()
        output.deindent()
        output.write(self.__STRUCT_FIELD_ASSIGNMENT_END)
        output.new_line()

    def __write_struct_declaration_field(self, field: CtypeStructField, output: Output):
        output.write(self.__STRUCT_FIELD_PATTERN.format(field.name, self.__mapping(field.type)))

    def __write_function(self, function: LibraryFunction, output: IndentableOutput):
        for line in self.__FUNCTION_LINES:
            output.write(line.format(
                function.name,
                function.loader,
                self._mapper.get_mappings(function.parameter_types),
                self.__mapping(function.return_type)
            ))
            output.new_line()

    def __write_error_lookup(self, lookup: ErrorLookup, output: IndentableOutput):
        output.write(self.__LOOKUP_TABLE_PATTERN.format(lookup.name))
        output.new_line()
        output.indent()
        for entry in lookup.entries:
            output.write(self.__LOOKUP_ENTRY_PATTERN.format(entry.code, entry.message))
            output.new_line()
        output.deindent()
        output.write("}")
        output.new_line()
        output.new_line()
        output.new_line()
        for line in self.__LOOKUP_FUNCTION_LINES:
            output.write(line.format(lookup.name, lookup.default))
            output.new_line()

    def __write_error_class(self, error_class: ErrorClass, output: IndentableOutput):
        message = f"{error_class.lookup}(code)" if error_class.lookup is not None else f"\"{error_class.default}\""
        for line in self.__ERROR_CLASS_LINES:
            output.write(line.format(error_class.name, message))
            output.new_line()
        output.new_line()
        output.new_line()
        for line in self.__CHECK_FUNCTION_LINES:
            output.write(line.format(error_class.name, error_class.result_enum, error_class.ok))
            output.new_line()

    def __write_handle_class(self, handle: HandleClass, output: IndentableOutput):
        for line in self.__HANDLE_CLASS_LINES:
            output.write(line.format(handle.name, handle.opaque_type))
            output.new_line()
        output.indent()
        for method in handle.methods:
            output.new_line()
            self.__write_wrapper(method, output, in_class=True)
        output.deindent()

    def __write_wrapper(self, wrapper: WrapperFunction, output: IndentableOutput, in_class: bool = False):
        parameters = list(wrapper.parameters)
        arguments = list(wrapper.parameters)
        if wrapper.bound:
            parameters.insert(0, "self")
            arguments.insert(0, self.__HANDLE_ARGUMENT)
        elif in_class:
            output.write(self.__STATIC_METHOD)
            output.new_line()
        output.write(self.__WRAPPER_DEFINITION_PATTERN.format(wrapper.name, ", ".join(parameters)))
        output.new_line()
        output.indent()
        pattern = self.__CHECKED_CALL_PATTERN if wrapper.checked else self.__RETURNED_CALL_PATTERN
        output.write(pattern.format(wrapper.function, ", ".join(arguments)))
        output.new_line()
        output.deindent()

    def __mapping(self, typ: CtypeFieldType) -> str:
        return self._mapper.get_mapping(typ)


def render(binding_file: BindingFile, writer: PythonBindingWriter) -> str:
    output = StringOutput()
    writer.write(binding_file, output)
    return output.getvalue()


def render_package_init(binding_files: list[BindingFile]) -> str:
    output = StringOutput()
    output.write("# Generated by fmod-bindgen. Do not edit.")
    output.new_line()
    for binding_file in binding_files:
        module = binding_file.name[:binding_file.name.rfind(".")]
        output.write(f"from .{module} import *")
        output.new_line()
    return output.getvalue()
