from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models exchanged as JSON with camelCase keys (experimentId, byVariant, ...).

    Both the camelCase alias and the python field name are accepted on input.
    Infinite floats (an improvement over a 0% control) are written as `Infinity`.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        ser_json_inf_nan="constants",
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
