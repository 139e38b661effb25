"""Repository discovery and layered configuration resolution.

Every repository option is looked up through an ordered chain of sources:
command line overrides, then the repository's env file, then the ambient
environment, and finally the built-in default. The ambient environment is
always handed in as a plain mapping so the rest of the pipeline never reads
``os.environ`` on its own.
"""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from io import StringIO
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

from dotenv import dotenv_values
from dotenv.parser import parse_stream
from dotenv.variables import parse_variables

from borgreport.domain.errors import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Connection variable every repository needs
BORG_REPO = "BORG_REPO"

# Repository-level variables; the command line may override them, a
# repository env file beats the ambient environment.
GLOB_ARCHIVES = "BORGREPORT_GLOB_ARCHIVES"
CHECK = "BORGREPORT_CHECK"
CHECK_OPTIONS = "BORGREPORT_CHECK_OPTIONS"
COMPACT = "BORGREPORT_COMPACT"
COMPACT_OPTIONS = "BORGREPORT_COMPACT_OPTIONS"
BORG_BINARY = "BORGREPORT_BORG_BINARY"
MAX_AGE_HOURS = "BORGREPORT_MAX_AGE_HOURS"

# Run-level variables, read by the command line layer
ENV_DIR = "BORGREPORT_ENV_DIR"
ENV_INHERIT = "BORGREPORT_ENV_INHERIT"
MAIL_TO = "BORGREPORT_MAIL_TO"
MAIL_FROM = "BORGREPORT_MAIL_FROM"
NO_PROGRESS = "BORGREPORT_NO_PROGRESS"
TEXT_TO = "BORGREPORT_TEXT_TO"
HTML_TO = "BORGREPORT_HTML_TO"
METRICS_TO = "BORGREPORT_METRICS_TO"
MAX_WORKERS = "BORGREPORT_MAX_WORKERS"

DEFAULT_MAX_AGE_HOURS = 24.0
DEFAULT_MAX_WORKERS = 4

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


# Option sources --------------------------------------------------------------
class OptionSource(Protocol):
    """A single configuration layer."""

    label: str

    def get(self, name: str) -> Any | None:
        """Return the raw value for *name*, or ``None`` when unset."""


@dataclass(frozen=True, slots=True)
class MappingOptionSource:
    """Layer backed by a mapping (environment, env file or CLI overrides)."""

    values: Mapping[str, Any]
    label: str

    def get(self, name: str) -> Any | None:
        return self.values.get(name)


@dataclass(frozen=True, slots=True)
class ChainedOptionSource:
    """Query layers in order until one of them provides a value."""

    sources: Sequence[OptionSource]

    def lookup(self, name: str) -> tuple[Any, str] | None:
        for source in self.sources:
            value = source.get(name)
            if value is not None:
                return value, source.label
        return None


# Typed options ---------------------------------------------------------------
def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"expected a boolean (true/false), got {value!r}")


def parse_float(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return float(str(value).strip())


def parse_words(value: Any) -> tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return tuple(shlex.split(str(value)))


def parse_path(value: Any) -> Path:
    return Path(str(value)).expanduser()


@dataclass(frozen=True, slots=True)
class OptionSpec(Generic[T]):
    """A named option with its parser and built-in default."""

    name: str
    parse: Callable[[Any], T]
    default: T

    def resolve(self, chain: ChainedOptionSource, repository: str) -> T:
        found = chain.lookup(self.name)
        if found is None:
            return self.default
        raw, origin = found
        try:
            return self.parse(raw)
        except ValueError as exc:
            raise ConfigError(
                f"Cannot parse parameter {self.name} ({origin}) for repo {repository}: {exc}"
            ) from exc


GLOB_ARCHIVES_OPTION: OptionSpec[tuple[str, ...]] = OptionSpec(GLOB_ARCHIVES, parse_words, ())
CHECK_OPTION: OptionSpec[bool] = OptionSpec(CHECK, parse_bool, False)
CHECK_OPTIONS_OPTION: OptionSpec[tuple[str, ...]] = OptionSpec(CHECK_OPTIONS, parse_words, ())
COMPACT_OPTION: OptionSpec[bool] = OptionSpec(COMPACT, parse_bool, False)
COMPACT_OPTIONS_OPTION: OptionSpec[tuple[str, ...]] = OptionSpec(
    COMPACT_OPTIONS, parse_words, ()
)
BORG_BINARY_OPTION: OptionSpec[Path] = OptionSpec(BORG_BINARY, parse_path, Path("borg"))
MAX_AGE_HOURS_OPTION: OptionSpec[float] = OptionSpec(
    MAX_AGE_HOURS, parse_float, DEFAULT_MAX_AGE_HOURS
)


@dataclass(frozen=True, slots=True)
class RepositoryOverrides:
    """Command line values that take precedence over every other layer."""

    glob_archives: str | None = None
    check: bool | None = None
    compact: bool | None = None
    borg_binary: Path | None = None
    max_age_hours: float | None = None

    def as_mapping(self) -> dict[str, Any]:
        values = {
            GLOB_ARCHIVES: self.glob_archives,
            CHECK: self.check,
            COMPACT: self.compact,
            BORG_BINARY: self.borg_binary,
            MAX_AGE_HOURS: self.max_age_hours,
        }
        return {key: value for key, value in values.items() if value is not None}


@dataclass(frozen=True, slots=True)
class RepositoryConfig:
    """Effective configuration of one repository for the current run."""

    name: str
    env: Mapping[str, str]
    borg_binary: Path = Path("borg")
    archive_globs: tuple[str, ...] = ()
    run_check: bool = False
    check_options: tuple[str, ...] = ()
    run_compact: bool = False
    compact_options: tuple[str, ...] = ()
    max_age_hours: float = DEFAULT_MAX_AGE_HOURS


@dataclass(frozen=True, slots=True)
class ConfigFailure:
    """A repository whose configuration could not be resolved."""

    name: str
    error: ConfigError


@dataclass(frozen=True, slots=True)
class RunOptions:
    """Per-run options as handed over by the command line layer."""

    env_dirs: tuple[Path, ...] = ()
    env_inherit: str | None = None
    text_to: Path | None = None
    html_to: Path | None = None
    metrics_to: Path | None = None
    mail_to: str | None = None
    mail_from: str | None = None
    progress: bool = True
    max_workers: int = DEFAULT_MAX_WORKERS
    overrides: RepositoryOverrides = field(default_factory=RepositoryOverrides)

    @property
    def inherit_mode(self) -> bool:
        return self.env_inherit is not None


def resolve_repository(
    name: str,
    repository_env: Mapping[str, str],
    *,
    environ: Mapping[str, str],
    overrides: RepositoryOverrides | None = None,
) -> RepositoryConfig:
    """Merge the three configuration layers into one ``RepositoryConfig``."""

    chain = ChainedOptionSource(
        (
            MappingOptionSource((overrides or RepositoryOverrides()).as_mapping(), "command line"),
            MappingOptionSource(repository_env, "repository"),
            MappingOptionSource(environ, "environment"),
        )
    )

    if not repository_env.get(BORG_REPO):
        raise ConfigError(
            f"No value for '{BORG_REPO}' was provided for repository: '{name}'"
        )

    return RepositoryConfig(
        name=name,
        env=dict(repository_env),
        borg_binary=BORG_BINARY_OPTION.resolve(chain, name),
        archive_globs=GLOB_ARCHIVES_OPTION.resolve(chain, name),
        run_check=CHECK_OPTION.resolve(chain, name),
        check_options=CHECK_OPTIONS_OPTION.resolve(chain, name),
        run_compact=COMPACT_OPTION.resolve(chain, name),
        compact_options=COMPACT_OPTIONS_OPTION.resolve(chain, name),
        max_age_hours=MAX_AGE_HOURS_OPTION.resolve(chain, name),
    )


# Discovery -------------------------------------------------------------------
def collect_env_files(env_dirs: Iterable[Path]) -> list[Path]:
    """Return every ``*.env`` file of the given directories, sorted."""

    files: list[Path] = []
    for env_dir in env_dirs:
        try:
            entries = list(Path(env_dir).iterdir())
        except OSError as exc:
            raise ConfigError(f"Cannot open env directory: {env_dir}: {exc}") from exc
        files.extend(
            entry
            for entry in entries
            if entry.is_file() and entry.suffix.lower() == ".env"
        )
    return sorted(files)


def load_env_file(
    path: Path, environ: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Parse a ``KEY=VALUE`` file, rejecting lines that do not parse.

    ``${VAR}`` references are expanded against earlier keys of the file and
    then *environ*; the process environment is never consulted.
    """

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot open ENV file {path}: {exc}") from exc

    for binding in parse_stream(StringIO(content)):
        if binding.error:
            line = binding.original.line
            raise ConfigError(
                f"Cannot parse the file '{path}' at line {line}: "
                f"{binding.original.string.strip()!r}"
            )

    values = dotenv_values(stream=StringIO(content), interpolate=False)
    scope = dict(environ or {})
    resolved: dict[str, str] = {}
    for key, value in values.items():
        if value is None:
            continue
        resolved[key] = "".join(atom.resolve(scope) for atom in parse_variables(value))
        scope[key] = resolved[key]
    return resolved


def repository_name_from_location(location: str) -> str:
    """Use the last path segment of a repository location as its name."""

    trimmed = location.strip().rstrip("/")
    return re.split(r"[/:]", trimmed)[-1] if trimmed else ""


def inherited_environment(environ: Mapping[str, str]) -> dict[str, str]:
    return {key: value for key, value in environ.items() if key.startswith("BORG_")}


@dataclass(slots=True)
class Discovery:
    """Repositories found for a run, in the order they will be reported."""

    repositories: list[RepositoryConfig | ConfigFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def discover_repositories(options: RunOptions, environ: Mapping[str, str]) -> Discovery:
    """Discover repositories for the run and resolve each configuration.

    A repository whose configuration is broken yields a ``ConfigFailure`` so
    the remaining repositories can still be processed. Failing to read an env
    directory is fatal for the whole run.
    """

    discovery = Discovery()

    if options.inherit_mode:
        repository_env = inherited_environment(environ)
        name = options.env_inherit or repository_name_from_location(
            repository_env.get(BORG_REPO, "")
        )
        if not name:
            discovery.repositories.append(
                ConfigFailure(
                    "",
                    ConfigError(
                        f"No value for '{BORG_REPO}' was provided to derive a repository name"
                    ),
                )
            )
            return discovery
        discovery.repositories.append(
            _resolve_or_fail(name, repository_env, environ, options.overrides)
        )
        return discovery

    env_files = collect_env_files(options.env_dirs)
    if not env_files:
        dirs = ", ".join(f"'{env_dir}'" for env_dir in options.env_dirs)
        discovery.warnings.append(f"No *.env files found in [{dirs}]")
        return discovery

    seen: set[str] = set()
    for path in env_files:
        name = path.stem
        if name in seen:
            discovery.repositories.append(
                ConfigFailure(
                    name,
                    ConfigError(f"Duplicate repository name from file '{path}'"),
                )
            )
            continue
        seen.add(name)
        try:
            repository_env = load_env_file(path, environ)
        except ConfigError as exc:
            logger.warning("Skipping repository %s: %s", name, exc)
            discovery.repositories.append(ConfigFailure(name, exc))
            continue
        discovery.repositories.append(
            _resolve_or_fail(name, repository_env, environ, options.overrides)
        )
    logger.debug("Discovered %d repositories", len(discovery.repositories))
    return discovery


def _resolve_or_fail(
    name: str,
    repository_env: Mapping[str, str],
    environ: Mapping[str, str],
    overrides: RepositoryOverrides,
) -> RepositoryConfig | ConfigFailure:
    try:
        return resolve_repository(
            name, repository_env, environ=environ, overrides=overrides
        )
    except ConfigError as exc:
        logger.warning("Skipping repository %s: %s", name, exc)
        return ConfigFailure(name, exc)


__all__ = [
    "BORG_REPO",
    "ChainedOptionSource",
    "ConfigFailure",
    "Discovery",
    "MappingOptionSource",
    "OptionSource",
    "OptionSpec",
    "RepositoryConfig",
    "RepositoryOverrides",
    "RunOptions",
    "collect_env_files",
    "discover_repositories",
    "inherited_environment",
    "load_env_file",
    "parse_bool",
    "parse_float",
    "parse_words",
    "repository_name_from_location",
    "resolve_repository",
]
