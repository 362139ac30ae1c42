from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from copytree.config import (
    DEFAULT_FOOTER_FORMAT,
    DEFAULT_HEADER_FORMAT,
    DEFAULT_MAX_TEXT_BYTES,
    SELECTED_ITEMS_KEY,
    ExportTemplate,
    HeaderPolicy,
)
from copytree.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "COPYTREE_"
OPTION_FILE_NAME = ".copytree.yaml"
STATE_DIR_NAME = ".copytree"


def split_roots(value: Any) -> Any:  # noqa: ANN401
    """Split an ``os.pathsep`` separated roots string; other values pass through."""
    if isinstance(value, str):
        return [p for p in value.split(os.pathsep) if p.strip()]
    return value


class Settings(BaseModel):
    """Configuration settings for the copytree package.

    Option files may use either the snake_case names below or the camelCase
    names of the editor configuration (``characterLimit``, ``exportStartTemplate``...).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True, extra="ignore")

    roots: list[Path] = Field(default_factory=list, description="Workspace root folders.")
    character_limit: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("character_limit", "characterLimit"),
        description="Maximum characters per export segment.",
    )
    export_start_template: str = Field(
        default="",
        validation_alias=AliasChoices("export_start_template", "exportStartTemplate"),
        description="Text before the first segment.",
    )
    export_continuation_template: str = Field(
        default="",
        validation_alias=AliasChoices("export_continuation_template", "exportContinuationTemplate"),
        description="Text after every non-final segment.",
    )
    export_end_template: str = Field(
        default="",
        validation_alias=AliasChoices("export_end_template", "exportEndTemplate"),
        description="Text after the last segment.",
    )
    copy_template: str = Field(
        default="%content%",
        validation_alias=AliasChoices("copy_template", "copyTemplate"),
        description="Template for copied text; %content% is replaced.",
    )
    max_text_bytes: int = Field(
        default=DEFAULT_MAX_TEXT_BYTES,
        ge=0,
        validation_alias=AliasChoices("max_text_bytes", "maxTextBytes"),
        description="Files above are exported by path only.",
    )
    header_policy: HeaderPolicy = Field(
        default=HeaderPolicy.KEEP_WITH_CONTENT,
        validation_alias=AliasChoices("header_policy", "headerPolicy"),
        description="Keep file headers with their first line.",
    )
    header_format: str = Field(default=DEFAULT_HEADER_FORMAT, description="Per-file header line.")
    footer_format: str = Field(default=DEFAULT_FOOTER_FORMAT, description="Per-file footer line, empty for none.")
    state_file: Path | None = Field(default=None, description="Selection state file.")
    state_key: str = Field(default=SELECTED_ITEMS_KEY, description="Key of the selection in the state file.")
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("roots", mode="before")
    @classmethod
    def _split_roots(cls, value: Any) -> Any:  # noqa: ANN401
        return split_roots(value)

    @field_validator("header_format", "footer_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        try:
            value.format(path="")
        except (KeyError, IndexError, ValueError) as e:
            msg = f"only the {{path}} field is supported: {value!r}"
            raise ValueError(msg) from e
        return value

    @property
    def workspace_root(self) -> Path | None:
        """First workspace root, against which export paths are reported."""
        return self.roots[0].resolve() if self.roots else None

    @property
    def template(self) -> ExportTemplate:
        return ExportTemplate(
            start=self.export_start_template,
            continuation=self.export_continuation_template,
            end=self.export_end_template,
        )

    def resolved_state_file(self) -> Path | None:
        """Return the selection state file, defaulting to one under the first root."""
        if self.state_file is not None:
            return self.state_file
        root = self.workspace_root
        return None if root is None else root / STATE_DIR_NAME / "state.json"


def load_option_file(path: Path) -> dict[str, Any]:
    """Read a YAML option file.

    Raises:
        ConfigurationError: if the file is not a YAML mapping.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(option=str(path), message=f"Invalid option file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(option=str(path), message=f"Option file {path} must contain a mapping.")
    return data


def env_options(environ: Mapping[str, str] | None = None, env_file: str = ENV_FILE) -> dict[str, str]:
    """Collect ``COPYTREE_*`` options from a ``.env`` file and the environment.

    Process environment values win over the ``.env`` file.
    """
    merged: dict[str, str | None] = dict(dotenv_values(env_file)) if env_file else {}
    merged.update(os.environ if environ is None else environ)
    return {
        key[len(ENV_PREFIX) :].lower(): value
        for key, value in merged.items()
        if key.startswith(ENV_PREFIX) and value is not None
    }


def default_option_file(roots: Any) -> Path | None:  # noqa: ANN401
    """Return the option file of the first root, else the one in the current directory."""
    candidates = [Path(p) for p in split_roots(roots) or []][:1]
    candidates.append(Path.cwd())
    for directory in candidates:
        path = directory / OPTION_FILE_NAME
        if path.is_file():
            return path
    return None


def load_settings(
    config_path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    env_file: str = ENV_FILE,
) -> Settings:
    """Build settings from defaults, an option file, the environment and overrides.

    Later sources win. Without ``config_path``, ``.copytree.yaml`` in the
    first workspace root (from the overrides or the environment) is used when
    present, then the one in the current directory. ``None`` overrides are
    ignored.

    Raises:
        ConfigurationError: if an explicit option file is missing or malformed.
    """
    env = env_options(environ, env_file)
    given = {k: v for k, v in (overrides or {}).items() if v is not None}
    options: dict[str, Any] = {}
    if config_path is not None:
        if not config_path.is_file():
            raise ConfigurationError(option="config", message=f"Option file not found: {config_path}")
        options.update(load_option_file(config_path))
    else:
        option_file = default_option_file(given.get("roots") or env.get("roots"))
        if option_file is not None:
            options.update(load_option_file(option_file))
    options.update(env)
    options.update(given)
    try:
        return Settings.model_validate(options)
    except ValidationError as e:
        fields = ", ".join(sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]}))
        raise ConfigurationError(option=fields or "settings", message=f"Invalid configuration: {e}") from e
