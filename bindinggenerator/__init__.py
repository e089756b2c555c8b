from astparser.types import FundamentalType

# attribute names in the ctypes module, spelled out since ctypes aliases equally sized types on some platforms
fundamental_types_to_ctypes = {
    FundamentalType.CHAR: "c_char",
    FundamentalType.UNSIGNED_CHAR: "c_ubyte",
    FundamentalType.SIGNED_CHAR: "c_byte",
    FundamentalType.INT: "c_int",
    FundamentalType.UNSIGNED_INT: "c_uint",
    FundamentalType.SHORT: "c_short",
    FundamentalType.UNSIGNED_SHORT: "c_ushort",
    FundamentalType.LONG_LONG: "c_longlong",
    FundamentalType.LONG: "c_long",
    FundamentalType.UNSIGNED_LONG_LONG: "c_ulonglong",
    FundamentalType.UNSIGNED_LONG: "c_ulong",
    FundamentalType.FLOAT: "c_float",
    FundamentalType.VOID: None
}
