from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel, ValidationError

from quickimage.core.exceptions import InvalidOptionsError

OptionsT = TypeVar("OptionsT", bound=BaseModel)


def parse_options(options_model: Type[OptionsT], raw: Dict[str, Any]) -> OptionsT:
    try:
        return options_model.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise InvalidOptionsError(f"Invalid {options_model.__name__}: {problems}", original_error=e) from e
