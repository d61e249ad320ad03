"""Validated shapes for administrative guarantee input."""
from typing import Any, Literal, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from refillguard.app.core.constants import DEFAULT_RULE_PRIORITY
from refillguard.app.exceptions import PatternError, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

RuleAction = Literal["no_guarantee", "guarantee"]


def _normalize_csv(v: Any) -> Any:
    if v is None:
        return v
    if isinstance(v, (list, tuple)):
        items = [str(item).strip() for item in v]
        return ",".join(item for item in items if item)
    if isinstance(v, str):
        return ",".join(item.strip() for item in v.split(",") if item.strip())
    raise ValueError("must be a comma separated string or a list of strings")


class GuaranteeConfigUpdate(BaseModel):
    """Partial update of a user's guarantee configuration."""

    model_config = ConfigDict(extra="forbid")

    patterns: Optional[list[str]] = None
    keywords: Optional[str] = None
    emojis: Optional[str] = None
    default_days: Optional[int] = Field(default=None, ge=1, le=365)
    is_enabled: Optional[bool] = None
    no_guarantee_action: Optional[Literal["ALLOW", "DENY", "ASK"]] = None
    detection_method: Optional[Literal["pattern", "api", "both"]] = None

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        """Reject patterns that would be skipped at evaluation time anyway."""
        if v is None:
            return v
        from refillguard.app.services.guarantee.regex_utils import compile_pattern

        for pattern in v:
            if not pattern:
                continue
            try:
                compile_pattern(pattern)
            except PatternError as e:
                raise ValueError(e.message) from e
        return [p for p in v if p]

    @field_validator("keywords", "emojis", mode="before")
    @classmethod
    def normalize_csv(cls, v: Any) -> Any:
        return _normalize_csv(v)


class GuaranteeRuleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    keyword: str = Field(min_length=1, max_length=255)
    action: RuleAction = "guarantee"
    days: Optional[int] = Field(default=None, ge=1)
    is_lifetime: bool = False
    priority: int = DEFAULT_RULE_PRIORITY
    is_active: bool = True
    panel_id: Optional[str] = None

    @field_validator("keyword")
    @classmethod
    def strip_keyword(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("keyword must not be blank")
        return v

    @field_validator("panel_id", mode="before")
    @classmethod
    def blank_panel_is_global(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return str(v)

    @model_validator(mode="after")
    def check_action_fields(self) -> "GuaranteeRuleCreate":
        if self.action == "no_guarantee":
            self.days = None
            self.is_lifetime = False
        elif self.is_lifetime:
            self.days = None
        elif self.days is None:
            raise ValueError("days is required for a guarantee rule unless it is lifetime")
        return self


class GuaranteeRuleUpdate(BaseModel):
    """Partial rule update; cross-field checks run against the merged rule."""

    model_config = ConfigDict(extra="forbid")

    keyword: Optional[str] = Field(default=None, min_length=1, max_length=255)
    action: Optional[RuleAction] = None
    days: Optional[int] = Field(default=None, ge=1)
    is_lifetime: Optional[bool] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    panel_id: Optional[str] = None

    @field_validator("keyword")
    @classmethod
    def strip_keyword(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("keyword must not be blank")
        return v


def parse_admin_input(model: Type[ModelT], data: Any) -> ModelT:
    """Validate admin input, re-raising pydantic errors as ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = first.get("msg", "Invalid input")
        raise ValidationError(
            f"{field}: {message}" if field else message, field=field
        ) from e
