import typing

from pydantic import BaseModel, ValidationError

from errors import FormDecodeError

SKIP = "-"


def _is_list(annotation):
    return typing.get_origin(annotation) in (list, typing.List)


class FormDecoder:
    """
    Fills pydantic models from submitted form data (a werkzeug MultiDict).

    The form key is the field's alias, defaulting to the field name;
    ``Field(alias="-")`` keeps a field out of form decoding. List fields
    collect every value submitted under their key. Fields missing from
    the form keep their model defaults.
    """

    def decode(self, model_cls: type[BaseModel], form) -> BaseModel:
        values = {}
        for name, info in model_cls.model_fields.items():
            key = info.alias or name
            if key == SKIP or key not in form:
                continue
            values[key] = form.getlist(key) if _is_list(info.annotation) else form.get(key)
        try:
            return model_cls.model_validate(values)
        except ValidationError as err:
            error = err.errors()[0]
            key = error["loc"][0] if error["loc"] else ""
            raise FormDecodeError(key, error.get("input")) from err
