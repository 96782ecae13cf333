"""Strict schema baselines with forbidden extras by default."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Neutral strict base for response DTOs."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class StrictRequestModel(StrictModel):
    """Request and command base; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, str_strip_whitespace=True)
