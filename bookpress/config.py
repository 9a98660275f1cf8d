"""
config.py

Responsibility: Load build/publish settings into a deterministic, typed model.

Layering:
- Built-in defaults (the values the book's CI scripts always used)
- An optional YAML settings file (`_bookpress.yml` in the book root)
- CI environment variables for the credential, branch, slug and build number

The renderer, publisher and CLI should treat the parsed result as the single source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError

DEFAULT_CONFIG_NAME = "_bookpress.yml"

DEFAULT_TARGETS = (
    "bookdown::git_book",
    "bookdown::pdf_book",
    "bookdown::epub_book",
)

RENDER_EXPRESSION = "rmarkdown::render_site(output_format = '{{ target }}', encoding = '{{ encoding }}')"
DEFAULT_COMMIT_MESSAGE = "Update the book (travis build {{ build_number }})"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EnvNames:
    """Names of the CI environment variables read at publish time."""

    token: str = "GITHUB_PAT"
    branch: str = "TRAVIS_BRANCH"
    repo_slug: str = "TRAVIS_REPO_SLUG"
    build_number: str = "TRAVIS_BUILD_NUMBER"


@dataclass(frozen=True)
class PublishSettings:
    source_branch: str = "master"
    pages_branch: str = "gh-pages"
    # None: a temporary directory per run.
    clone_dir: str | None = None
    remote_url: str | None = None
    user_name: str = "bookpress"
    user_email: str = "bookpress@users.noreply.github.com"
    commit_message: str = DEFAULT_COMMIT_MESSAGE


@dataclass(frozen=True)
class Settings:
    """Everything `build`, `publish` and `status` need, resolved against `root`."""

    root: Path = field(default_factory=Path.cwd)
    output_dir: str = "_book"
    rscript: str = "Rscript"
    encoding: str = "UTF-8"
    targets: tuple[str, ...] = DEFAULT_TARGETS
    publish: PublishSettings = field(default_factory=PublishSettings)
    env: EnvNames = field(default_factory=EnvNames)

    @property
    def output_path(self) -> Path:
        return (self.root / self.output_dir).resolve()

    @property
    def clone_path(self) -> Path | None:
        if self.publish.clone_dir is None:
            return None
        return (self.root / self.publish.clone_dir).resolve()


@dataclass(frozen=True)
class PublishEnvironment:
    """CI-provided values. Empty strings are normalised to None."""

    token: str | None = None
    branch: str | None = None
    repo_slug: str | None = None
    build_number: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str], names: EnvNames) -> "PublishEnvironment":
        def get(name: str) -> str | None:
            return (environ.get(name) or "").strip() or None

        return cls(
            token=get(names.token),
            branch=get(names.branch),
            repo_slug=get(names.repo_slug),
            build_number=get(names.build_number),
        )


_templates = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=False)


def render_text(template: str, **context: Any) -> str:
    """Render a settings template; undefined placeholders are configuration errors."""
    try:
        return _templates.from_string(template).render(**context)
    except TemplateError as e:
        raise ConfigError(f"Failed rendering template {template!r}: {e}") from e


def _mapping(data: dict[str, Any], key: str) -> dict[str, Any]:
    raw = data.get(key) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"`{key}` must be an object/mapping when provided.")
    return raw


def _string(raw: dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key)
    if value is None:
        return default
    value = str(value).strip()
    if not value:
        raise ConfigError(f"`{key}` must not be empty.")
    return value


def _optional(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def _targets(data: dict[str, Any]) -> tuple[str, ...]:
    raw = data.get("targets")
    if raw is None:
        return DEFAULT_TARGETS
    if not isinstance(raw, list) or not raw:
        raise ConfigError("`targets` must be a non-empty list of output format identifiers.")
    targets = tuple(str(t).strip() for t in raw)
    if any(not t for t in targets):
        raise ConfigError("`targets` must not contain empty identifiers.")
    if len(set(targets)) != len(targets):
        raise ConfigError("`targets` must not contain duplicates.")
    if any("'" in t or "\\" in t for t in targets):
        raise ConfigError("`targets` must not contain quotes or backslashes.")
    return targets


def parse_settings(data: dict[str, Any], *, root: str | Path = ".") -> Settings:
    """
    Build `Settings` from an already-loaded mapping.

    Recognised keys: output_dir, rscript, encoding, targets, publish.*, env.*
    """
    pub_raw = _mapping(data, "publish")
    env_raw = _mapping(data, "env")

    pub_defaults = PublishSettings()
    remote_url = _optional(pub_raw, "remote_url")

    publish = PublishSettings(
        source_branch=_string(pub_raw, "source_branch", pub_defaults.source_branch),
        pages_branch=_string(pub_raw, "pages_branch", pub_defaults.pages_branch),
        clone_dir=_optional(pub_raw, "clone_dir"),
        remote_url=remote_url,
        user_name=_string(pub_raw, "user_name", pub_defaults.user_name),
        user_email=_string(pub_raw, "user_email", pub_defaults.user_email),
        commit_message=_string(pub_raw, "commit_message", pub_defaults.commit_message),
    )

    env_defaults = EnvNames()
    env = EnvNames(
        token=_string(env_raw, "token", env_defaults.token),
        branch=_string(env_raw, "branch", env_defaults.branch),
        repo_slug=_string(env_raw, "repo_slug", env_defaults.repo_slug),
        build_number=_string(env_raw, "build_number", env_defaults.build_number),
    )

    defaults = Settings()
    return Settings(
        root=Path(root).resolve(),
        output_dir=_string(data, "output_dir", defaults.output_dir),
        rscript=_string(data, "rscript", defaults.rscript),
        encoding=_string(data, "encoding", defaults.encoding),
        targets=_targets(data),
        publish=publish,
        env=env,
    )


def load_settings(config_path: str | Path | None = None, *, root: str | Path = ".") -> Settings:
    """
    Load settings from `config_path`, or from `<root>/_bookpress.yml` if present.

    Only an explicitly named file is required to exist.
    """
    root_path = Path(root)
    if config_path is None:
        path = root_path / DEFAULT_CONFIG_NAME
        if not path.exists():
            return parse_settings({}, root=root_path)
    else:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Settings file does not exist: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Settings file is not valid YAML: {path}") from e
    if not isinstance(data, dict):
        raise ConfigError("Settings file must be a mapping/object at the top level.")
    return parse_settings(data, root=root_path)
