"""Option models for brokers, the loader, and the dumper."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BrokerOptions(BaseModel):
    """Registration and import policy for a FieldBroker."""
    overwrite: Literal["replace", "error"] = Field(
        "replace",
        description="Policy when a different bridge is registered under an existing name"
    )
    validate_kinds: bool = Field(
        False,
        description="Check value shape against the field kind on import"
    )

    model_config = ConfigDict(extra="forbid", frozen=True)


class LoaderOptions(BaseModel):
    """Options for reading configuration documents."""
    include_key: str = "include"
    record_tag_prefix: str = "record:"
    encoding: str = "utf-8-sig"  # tolerates a leading BOM
    broker: BrokerOptions = Field(default_factory=BrokerOptions)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator('include_key', 'record_tag_prefix')
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must not be empty")
        return v


class DumpOptions(BaseModel):
    """Options for writing configuration documents."""
    width: int = 65
    explicit_start: bool = True
    tag: Optional[str] = None
    include_tags: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True)
