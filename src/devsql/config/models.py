"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (DEVSQL__SECTION__KEY)
3. Tool environment variables (CLAUDE_DATA_DIR, CODEX_HOME)
4. Global YAML (~/.config/devsql/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    DEVSQL__<SECTION>__<KEY>=<VALUE>

Examples:
    DEVSQL__LOGGING__LEVEL=DEBUG
    DEVSQL__OUTPUT__FORMAT=json
    DEVSQL__SOURCES__DATA_DIR=/tmp/claude
    DEVSQL__MUTATION__REQUIRE_WHERE=false
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
OutputFormat = Literal["table", "json", "jsonl", "csv", "raw"]

OUTPUT_FORMATS: tuple[str, ...] = ("table", "json", "jsonl", "csv", "raw")


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        DEVSQL__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. -v on the command line forces DEBUG.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class SourcesConfig(BaseModel):
    """Where table data comes from.

    Env vars:
        DEVSQL__SOURCES__DATA_DIR: Assistant data directory (also CLAUDE_DATA_DIR)
        DEVSQL__SOURCES__CODEX_HOME: Secondary CLI home (also CODEX_HOME)
        DEVSQL__SOURCES__REPOS: JSON list of repository paths
    """

    data_dir: Path = Field(
        default=Path("~/.claude"),
        validate_default=True,
        description="Directory holding history.jsonl, transcripts/, todos/ and stats-cache.json.",
    )
    codex_home: Path = Field(
        default=Path("~/.codex"),
        validate_default=True,
        description="Directory holding the secondary CLI's history.jsonl.",
    )
    repos: list[Path] = Field(
        default_factory=lambda: [Path(".")],
        description="Repositories attached to the git tables, in union order.",
    )

    @field_validator("data_dir", "codex_home")
    @classmethod
    def expand_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("repos")
    @classmethod
    def validate_repos(cls, v: list[Path]) -> list[Path]:
        if not v:
            raise ValueError("At least one repository path is required")
        return [p.expanduser() for p in v]


class OutputConfig(BaseModel):
    """Result rendering.

    Env vars:
        DEVSQL__OUTPUT__FORMAT: table, json, jsonl, csv or raw
        DEVSQL__OUTPUT__NULL_DISPLAY: Sentinel shown for NULL in table output
        DEVSQL__OUTPUT__HEADER: Emit the header row for table and csv
    """

    format: OutputFormat = "table"
    null_display: str = Field(
        default="NULL",
        description="Text rendered for NULL cells in table output.",
    )
    header: bool = True


class MutationConfig(BaseModel):
    """Guard rails for DELETE/UPDATE/INSERT.

    Env vars:
        DEVSQL__MUTATION__REQUIRE_WHERE: Refuse DELETE/UPDATE without WHERE
    """

    require_where: bool = Field(
        default=True,
        description="Refuse DELETE and UPDATE without a WHERE clause. "
        "RISK: disabling lets a typo rewrite every row.",
    )


class DevsqlConfig(BaseModel):
    """Root configuration for devsql.

    All settings can be configured via:
    1. Environment variables: DEVSQL__SECTION__KEY
    2. The global YAML config file
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    mutation: MutationConfig = Field(default_factory=MutationConfig)
