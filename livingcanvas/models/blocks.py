"""
Block data models for Living Canvas.

This module defines the validated shape of a block manifest: the block's
identity, its settings schema and the location of its transform logic.
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SettingType(str, Enum):
    TEXT = "text"
    MULTILINE_TEXT = "textarea"
    ENUMERATED_CHOICE = "dropdown"
    NUMBER = "number"
    BOOLEAN = "boolean"


class BlockCategory(str, Enum):
    CORE = "core"
    COMMUNITY = "community"


class SettingSpec(BaseModel):
    """
    One configurable setting declared by a block.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Setting key, unique within the block")
    description: str = Field("", description="Human-readable explanation of the setting")
    type: SettingType = Field(SettingType.TEXT, description="Value type of the setting")
    required: bool = Field(False, description="Whether a value must be provided")
    default: Any = Field(None, description="Default value matching the setting type")
    options: Optional[Dict[str, str]] = Field(
        None,
        description="For dropdown settings, a mapping of value to display label"
    )

    @model_validator(mode="after")
    def _check_default_type(self) -> "SettingSpec":
        if self.type == SettingType.ENUMERATED_CHOICE and not self.options:
            raise ValueError(f"dropdown setting '{self.name}' needs options")
        if self.default is None:
            return self
        if self.type == SettingType.BOOLEAN and not isinstance(self.default, bool):
            raise ValueError(f"default of boolean setting '{self.name}' must be true or false")
        if self.type == SettingType.NUMBER and (
            isinstance(self.default, bool) or not isinstance(self.default, (int, float))
        ):
            raise ValueError(f"default of number setting '{self.name}' must be numeric")
        if self.type in (SettingType.TEXT, SettingType.MULTILINE_TEXT) and not isinstance(self.default, str):
            raise ValueError(f"default of text setting '{self.name}' must be a string")
        if self.type == SettingType.ENUMERATED_CHOICE and str(self.default) not in (self.options or {}):
            raise ValueError(f"default of dropdown setting '{self.name}' is not one of its options")
        return self


class BlockDefinition(BaseModel):
    """
    An immutable, validated block loaded from a block directory.

    Instances are never edited in place; a registry reload builds new ones.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Hierarchical id, '<category>/<name>'")
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    category: BlockCategory = Field(BlockCategory.COMMUNITY)
    settings: Tuple[SettingSpec, ...] = Field(default_factory=tuple)
    executor_path: str = Field(..., description="Path of the block's executor.py")

    @field_validator("id", "name", "description", "author", "version", mode="before")
    @classmethod
    def _strip_required(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("settings")
    @classmethod
    def _unique_setting_names(cls, settings: Tuple[SettingSpec, ...]) -> Tuple[SettingSpec, ...]:
        seen = set()
        for setting in settings:
            if setting.name in seen:
                raise ValueError(f"duplicate setting name '{setting.name}'")
            seen.add(setting.name)
        return settings

    def get_setting(self, name: str) -> Optional[SettingSpec]:
        for setting in self.settings:
            if setting.name == name:
                return setting
        return None

    @property
    def setting_names(self) -> Tuple[str, ...]:
        return tuple(setting.name for setting in self.settings)

    def default_config(self) -> Dict[str, Any]:
        """Build a node config holding every setting that declares a default."""
        return {
            setting.name: setting.default
            for setting in self.settings
            if setting.default is not None
        }

    def effective_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Restrict a node config to declared settings, filling in defaults.

        Keys the block does not declare are dropped; they are tolerated on the
        node but never reach the transform logic.
        """
        effective = self.default_config()
        for key, value in (config or {}).items():
            if key in self.setting_names:
                effective[key] = value
        return effective
