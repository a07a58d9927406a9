"""Application state and configuration."""

from __future__ import annotations

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from ecowatch.catalog.models import (
    Catalog,
    ResolvedToolchain,
    RunReport,
    ToolchainSpec,
    Verdict,
)
from ecowatch.core.base import BaseConfig, BaseState
from ecowatch.core.log import Logger
from ecowatch.core.yaml_settings import YamlWithIncludesSettingsSource

# Modules usable in {module.attr} templates inside YAML values, e.g.
# {platformdirs.user_cache_dir} or {os.getcwd}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================


class CatalogConfig(BaseConfig):
    """Where the catalog lives and how much history it keeps."""

    path: Path = Field(
        default=Path("db/catalog.json"),
        description="Catalog JSON document",
    )
    checkpoint: bool = Field(
        default=False,
        description=(
            "Save the catalog after every checked project so an "
            "interrupted run keeps its partial results"
        ),
    )
    history_limit: int = Field(
        default=20,
        ge=0,
        description="Build log entries kept per project",
    )


class ToolchainConfig(BaseConfig):
    """Compiler and version manager selection."""

    executable: str = Field(
        default="veryl",
        description="Toolchain executable looked up on PATH",
    )
    version: str | None = Field(
        default=None,
        description="Pinned toolchain version; unset uses the ambient one",
    )
    path: Path | None = Field(
        default=None,
        description="Explicit toolchain executable, e.g. a local build",
    )
    version_manager: str = Field(
        default="verylup",
        description="Version manager used to install pinned versions",
    )
    version_arg: str = Field(
        default="+{version}",
        description=(
            "Argument selecting a pinned version, prepended to every "
            "toolchain invocation"
        ),
    )
    probe_timeout: int = Field(
        default=60,
        description="Timeout for version probes in seconds",
    )
    install_timeout: int = Field(
        default=900,
        description="Timeout for installing a pinned version in seconds",
    )


class FetchConfig(BaseConfig):
    """Project checkout settings."""

    work_root: Path = Field(
        default_factory=lambda: (
            Path(platformdirs.user_cache_dir("ecowatch", appauthor=False))
            / "build"
        ),
        description="Parent directory of the temporary workspaces",
    )
    timeout: int = Field(
        default=300,
        description="Timeout for a single clone in seconds",
    )


class CheckConfig(BaseConfig):
    """Build verification settings."""

    timeout: int = Field(
        default=600,
        description="Wall-clock limit for checking one project in seconds",
    )
    jobs: int = Field(
        default=1,
        ge=1,
        description="Projects checked concurrently",
    )
    manifest: str = Field(
        default="Veryl.toml",
        description="Project manifest marking the build directory",
    )
    max_output_chars: int = Field(
        default=20_000,
        ge=1,
        description="Diagnostic text kept per failed project",
    )
    migrate: bool = Field(
        default=True,
        description="Run the toolchain's migrate command and rebuild once "
        "when a build fails",
    )
    compare: bool = Field(
        default=False,
        description="Use the compare command (check generated output "
        "without writing it) instead of build",
    )
    keep_logs: bool = Field(
        default=False,
        description="Write the full build output of every project to "
        "output_dir",
    )
    output_dir: Path = Field(
        default=Path("{config.log_root}/builds"),
        description="Directory for full build logs "
        "(supports {config.*} templates)",
    )


class DiscoveryConfig(BaseConfig):
    """Project discovery through the GitHub CLI."""

    query: str = Field(
        default="filename:Veryl.toml",
        description="GitHub code search query locating project manifests",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="owner/name ids never added to the catalog",
    )
    release_repo: str = Field(
        default="veryl-lang/veryl",
        description="Repository whose release downloads are recorded",
    )
    timeout: int = Field(
        default=600,
        description="Timeout for a single GitHub CLI call in seconds",
    )


class Config(BaseConfig):
    """Application configuration loaded from YAML/env/CLI."""

    logger: Logger = Field(
        default=None,
        description="Logger configuration and runtime instance",
    )
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    check: CheckConfig = Field(default_factory=CheckConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)

    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir("ecowatch",
                                                     appauthor=False))
        ),
        description="Root directory for log files",
    )
    commands: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description=(
            "Command templates by tool (git, toolchain, "
            "version_manager, github)"
        ),
    )

    @model_validator(mode='after')
    def _setup_logger(self) -> 'Config':
        """Install the global logger once the configuration is known."""
        from ecowatch.core.log import setup_logger

        if self.logger is None:
            self.logger = Logger()

        setup_logger(
            log_root=self.log_root,
            run_name="ecowatch",
            console=self.logger.console,
            file=self.logger.file,
            logfire=self.logger.logfire,
            level=self.logger.level,
        )
        return self

    def command(self, tool: str, name: str) -> str:
        """Return a command template.

        Raises:
            KeyError: naming the missing template
        """
        try:
            return self.commands[tool][name]
        except KeyError:
            raise KeyError(f"No '{name}' command configured for {tool}") \
                from None

    def close(self):
        from ecowatch.core.log import logger
        logger.close()
        super().close()


# ============================================================
# RUNTIME STATE MODELS (mutated during workflow execution)
# ============================================================


class CheckState(BaseState):
    """Check workflow runtime state."""

    catalog: Catalog | None = Field(
        default=None, description="Catalog loaded for this run"
    )
    spec: ToolchainSpec = Field(
        default_factory=ToolchainSpec,
        description="Requested toolchain",
    )
    toolchain: ResolvedToolchain | None = Field(
        default=None, description="Toolchain resolved for this run"
    )
    previous: dict[str, Verdict | None] = Field(
        default_factory=dict,
        description="Verdict per project id before this run",
    )
    verdicts: dict[str, Verdict] = Field(
        default_factory=dict,
        description="New verdict per project id, in catalog order",
    )
    started_at: datetime | None = Field(default=None)
    report: RunReport | None = Field(default=None)
    status: str = Field(
        default="pending",
        description="pending, running, complete, failed",
    )


class UpdateState(BaseState):
    """Update workflow runtime state."""

    catalog: Catalog | None = Field(default=None)
    added: list[str] = Field(
        default_factory=list, description="Project ids added this run"
    )
    sources: int = Field(
        default=0, description="Search hits seen during discovery"
    )
    run_check: bool = Field(
        default=False, description="Run the check workflow afterwards"
    )
    record_downloads: bool = Field(default=True)
    status: str = Field(default="pending")


class Runtime(BaseModel):
    """All runtime state, one section per workflow."""

    check: CheckState = Field(default_factory=CheckState)
    update: UpdateState = Field(default_factory=UpdateState)

    model_config = ConfigDict(arbitrary_types_allowed=True)


# ============================================================
# STATE (config + runtime combined)
# ============================================================


class State(BaseSettings):
    """Configuration plus runtime state; the object every workflow
    node receives.

    Configuration sources, highest priority first: constructor
    arguments (and the command line through CliApp), YAML files with
    include support, .env, ECOWATCH_* environment variables.
    """

    config: Config = Field(
        default_factory=Config,
        description="Application configuration (from YAML/env/CLI)",
    )
    runtime: Runtime = Field(
        default_factory=Runtime,
        description="Runtime state (mutates during workflow execution)",
    )
    include: list[str] | None = Field(
        default=None,
        description="Additional YAML files to merge over the defaults",
    )

    model_config = SettingsConfigDict(
        yaml_file="ecowatch.yaml",
        env_file=".env",
        env_prefix="ECOWATCH_",
        env_nested_delimiter="__",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    def close(self):
        self.config.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False

    @model_validator(mode="after")
    def substitute_templates(self) -> "State":
        """Expand {config.*} and {platformdirs.*} style templates in
        every string and Path value."""
        self._substitute_recursive(self.config)
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i in range(len(obj)):
                obj[i] = self._substitute_value(obj[i])

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value)
        if isinstance(value, Path):
            return Path(self._substitute_string(str(value)))
        if isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
        return value

    def _substitute_string(self, value: str) -> str:
        """Replace {config.a.b} and {module.attr} references.

        Anything else in braces (command template placeholders such as
        {branch} or {version}) is left for str.format at run time.

        Examples:
            "{config.log_root}/builds" -> "/home/me/.local/state/ecowatch/builds"
            "{platformdirs.user_cache_dir}" -> "/home/me/.cache/ecowatch"
        """
        def replace(match):
            root, *parts = match.group(1).split(".")
            if root in TEMPLATE_NAMESPACE and parts:
                obj = TEMPLATE_NAMESPACE[root]
            elif root == "config" and parts:
                obj = self.config
            else:
                return match.group(0)

            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj):
                    obj = (obj('ecowatch', appauthor=False)
                           if root == 'platformdirs' else obj())
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([A-Za-z_][A-Za-z0-9._]*)\}', replace, value)


__all__ = ["State", "Config", "BaseConfig", "BaseState"]
