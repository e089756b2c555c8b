from astparser.types import TypeRef, UserTypeRef


def get_user_type_name(typ: TypeRef):
    if isinstance(typ, UserTypeRef):
        return typ.name
    return None
