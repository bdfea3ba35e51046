from pydantic import BaseModel, ConfigDict, Field, JsonValue, model_validator
from datetime import datetime
from models.common import CamelModel

# --- Experiment definitions used by the report engine ---

class Variant(CamelModel):
    """One arm of an experiment. `config` is carried through untouched."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    config: dict[str, JsonValue] = Field(default_factory=dict)


class Experiment(CamelModel):
    """An experiment and its ordered variants.

    The control is `control_variant_id` when given, otherwise the first declared variant.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    variants: list[Variant] = Field(default_factory=list)
    control_variant_id: str | None = None

    @model_validator(mode="after")
    def check_control_variant(self):
        if self.control_variant_id is not None:
            if self.control_variant_id not in {v.id for v in self.variants}:
                raise ValueError(f"control variant {self.control_variant_id!r} is not one of the experiment variants")
        return self

    @property
    def control_variant(self) -> Variant | None:
        if not self.variants:
            return None
        if self.control_variant_id is None:
            return self.variants[0]
        return next(v for v in self.variants if v.id == self.control_variant_id)


# --- Pydantic Models for Requests/Responses ---

class VariantCreate(BaseModel):
    """Defines a variant of a new experiment."""
    name: str = Field(..., description="The variant name (e.g., 'red_button').")
    config: dict[str, JsonValue] = Field(default_factory=dict, description="Opaque variant configuration.")

class ExperimentCreate(BaseModel):
    """Schema for creating a new experiment via POST /experiments."""
    name: str
    description: str | None = None
    variants: list[VariantCreate] = Field(..., min_length=1)
    control_variant: str | None = Field(default=None, description="Name of the control variant, defaults to the first one.")
    target_user_percentage: int = Field(default=100, ge=0, le=100, description="Share of users enrolled, 0-100.")

    @model_validator(mode="after")
    def check_variants(self):
        names = [v.name for v in self.variants]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"variant names must be unique, duplicated: {duplicates}")
        if self.control_variant is not None and self.control_variant not in names:
            raise ValueError(f"control_variant {self.control_variant!r} must name one of the variants")
        return self

class ExperimentUpdate(BaseModel):
    """Schema for PUT /experiments/{id}; only the given fields change. Variants are fixed once events reference them."""
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None
    target_user_percentage: int | None = Field(default=None, ge=0, le=100)

class ExperimentResponse(BaseModel):
    """Schema for experiment records returned by the experiments API."""
    id: str
    name: str
    description: str | None = None
    is_active: bool = True
    target_user_percentage: int = 100
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

class ListExperimentsResponse(BaseModel):
    experiments: list[ExperimentResponse]
    total: int

class ActiveExperiment(CamelModel):
    """The variant a user/session sees in one active experiment."""
    experiment_id: str
    variant_id: str
    config: dict[str, JsonValue] = Field(default_factory=dict)

class ActiveExperimentsResponse(CamelModel):
    experiments: list[ActiveExperiment]
