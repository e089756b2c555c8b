from enum import Enum

from headergrammar.productions import Production, directive, macro, excluded_define, flags, type_alias, \
    opaque_type, enumeration, structure, callback, function, preset, constant, error_mapping, \
    error_table_directive

VERSION_DEFINE = "FMOD_VERSION"


class Dialect(Enum):
    CORE_COMMON = "core-common"
    CORE_CODEC = "core-codec"
    CORE_OUTPUT = "core-output"
    CORE_DSP = "core-dsp"
    CORE_DSP_EFFECTS = "core-dsp-effects"
    CORE = "core"
    STUDIO_COMMON = "studio-common"
    STUDIO = "studio"
    ERROR_TABLE = "error-table"


HEADER_DIALECTS: dict[str, Dialect] = {
    "fmod_common.h": Dialect.CORE_COMMON,
    "fmod_codec.h": Dialect.CORE_CODEC,
    "fmod_output.h": Dialect.CORE_OUTPUT,
    "fmod_dsp.h": Dialect.CORE_DSP,
    "fmod_dsp_effects.h": Dialect.CORE_DSP_EFFECTS,
    "fmod.h": Dialect.CORE,
    "fmod_studio_common.h": Dialect.STUDIO_COMMON,
    "fmod_studio.h": Dialect.STUDIO,
    "fmod_errors.h": Dialect.ERROR_TABLE,
}


def _common() -> tuple[Production, ...]:
    return (
        directive(),
        macro(),
        excluded_define(VERSION_DEFINE),
        flags(excluded_names=(VERSION_DEFINE,)),
        type_alias(),
        opaque_type(),
        enumeration(),
        structure(),
        callback(),
        preset(),
        constant(excluded_names=(VERSION_DEFINE,)),
    )


def _plugin(with_enumerations: bool) -> tuple[Production, ...]:
    productions = [directive(), macro(), flags(), opaque_type()]
    if with_enumerations:
        productions.append(enumeration())
    productions += [structure(), callback(), constant()]
    return tuple(productions)


def _functions() -> tuple[Production, ...]:
    return directive(), function()


def _error_table() -> tuple[Production, ...]:
    return error_table_directive(), error_mapping()


DIALECT_PRODUCTIONS: dict[Dialect, tuple[Production, ...]] = {
    Dialect.CORE_COMMON: _common(),
    Dialect.CORE_CODEC: _plugin(with_enumerations=False),
    Dialect.CORE_OUTPUT: _plugin(with_enumerations=False),
    Dialect.CORE_DSP: _plugin(with_enumerations=True),
    Dialect.CORE_DSP_EFFECTS: _plugin(with_enumerations=True),
    Dialect.CORE: _functions(),
    Dialect.STUDIO_COMMON: _plugin(with_enumerations=True),
    Dialect.STUDIO: _functions(),
    Dialect.ERROR_TABLE: _error_table(),
}


def productions_of(dialect: Dialect) -> tuple[Production, ...]:
    return DIALECT_PRODUCTIONS[dialect]


def production_names(dialect: Dialect) -> tuple[str, ...]:
    names: list[str] = []
    for production in productions_of(dialect):
        if production.name not in names:
            names.append(production.name)
    return tuple(names)
