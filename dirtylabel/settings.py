"""Settings resolution with profile precedence and GitHub Actions fallbacks."""

import os
import re
import subprocess
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from dirtylabel.models import ReconcileContext

CONFIG_PATH = Path.home() / ".config" / "dirtylabel" / "config.toml"

_REMOTE_RE = re.compile(r"github\.com[:/]([^/]+)/([^/]+?)(?:\.git)?$")


class DirtyLabelSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DIRTYLABEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_profile: str | None = None

    # GitHub
    github_token: SecretStr | None = None
    github_auth: str = "token"  # "token" | "gh-cli"
    repository: str | None = None  # owner/repo
    api_url: str = "https://api.github.com"

    # Job
    dirty_label: str | None = None
    remove_on_dirty_label: str = ""
    comment_on_dirty: str = ""
    comment_on_clean: str = ""
    retry_after: float = Field(120, ge=0)
    retry_max: int = Field(5, ge=0)
    continue_on_missing_permissions: bool = False
    base_branch: str | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # init kwargs carry profile values, which env and .env override
        return env_settings, dotenv_settings, init_settings, file_secret_settings


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/dirtylabel/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def _repo_from_git_remote() -> str | None:
    """Return owner/repo parsed from the origin remote, or None if it isn't GitHub."""
    result = subprocess.run(["git", "remote", "get-url", "origin"], capture_output=True, text=True)
    if result.returncode != 0:
        return None
    match = _REMOTE_RE.search(result.stdout.strip())
    if not match:
        return None
    return f"{match.group(1)}/{match.group(2)}"


def _base_branch_from_event() -> str | None:
    """Only push triggers restrict the check to PRs targeting the pushed branch."""
    if os.environ.get("GITHUB_EVENT_NAME") != "push":
        return None
    ref = os.environ.get("GITHUB_REF", "")
    if not ref.startswith("refs/heads/"):
        return None
    return ref.removeprefix("refs/heads/")


def _settings_error(exc: ValidationError, active: str | None) -> None:
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"])
        typer.echo(
            f"Invalid {field} in the [{active or 'profile'}] section of {CONFIG_PATH} "
            f"or DIRTYLABEL_{field.upper()}: {error['msg']}",
            err=True,
        )


def get_settings(profile: str | None = None, *, validate: bool = True, **overrides: object) -> DirtyLabelSettings:
    """Resolve the active profile and return a fully populated DirtyLabelSettings.

    Profile precedence (highest to lowest):
    1. profile argument (--profile CLI flag)
    2. DIRTYLABEL_DEFAULT_PROFILE env var
    3. default_profile key in ~/.config/dirtylabel/config.toml
    4. First profile defined in ~/.config/dirtylabel/config.toml

    Env vars and .env override profile values; non-None overrides (CLI options)
    override everything. With validate=False the job requirements (dirty label,
    repository, credentials) are not enforced, so incomplete setups can be shown.
    """
    toml_config = _load_toml()

    active = (
        profile
        or os.environ.get("DIRTYLABEL_DEFAULT_PROFILE")
        or toml_config.get("default_profile")
        or ((_profiles := _list_profiles(toml_config)) and _profiles[0] or None)
    )

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = dict(toml_config[active])
        elif active not in toml_config:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}", err=True)
            raise typer.Exit(1)

    try:
        settings = DirtyLabelSettings(**profile_defaults)
    except ValidationError as exc:
        _settings_error(exc, active)
        raise typer.Exit(1) from exc

    explicit = {k: v for k, v in overrides.items() if v is not None}
    if explicit:
        settings = settings.model_copy(update=explicit)

    if not settings.repository:
        repository = os.environ.get("GITHUB_REPOSITORY") or _repo_from_git_remote()
        settings = settings.model_copy(update={"repository": repository})
    if settings.base_branch is None:
        settings = settings.model_copy(update={"base_branch": _base_branch_from_event()})

    if not validate:
        return settings

    if not settings.dirty_label:
        typer.echo(
            "Missing dirty label. Set DIRTYLABEL_DIRTY_LABEL, pass --dirty-label, or set "
            f"dirty_label in the [{active or 'profile'}] section of {CONFIG_PATH}",
            err=True,
        )
        raise typer.Exit(1)
    if not settings.repository:
        typer.echo(
            "Cannot determine the repository. Set DIRTYLABEL_REPOSITORY or GITHUB_REPOSITORY, "
            "pass --repo, or run inside a clone with a GitHub origin remote.",
            err=True,
        )
        raise typer.Exit(1)
    if settings.github_auth == "token" and not settings.github_token:
        typer.echo(
            "Missing GitHub credentials. Set DIRTYLABEL_GITHUB_TOKEN or "
            f"github_token in the [{active or 'profile'}] section of {CONFIG_PATH}, "
            'or set github_auth = "gh-cli" to use the gh CLI.',
            err=True,
        )
        raise typer.Exit(1)

    return settings


def build_context(settings: DirtyLabelSettings) -> ReconcileContext:
    """Initial loop context: no cursor, full retry budget."""
    return ReconcileContext(
        after=None,
        base_branch=settings.base_branch,
        dirty_label=settings.dirty_label or "",
        remove_on_dirty_label=settings.remove_on_dirty_label,
        comment_on_dirty=settings.comment_on_dirty,
        comment_on_clean=settings.comment_on_clean,
        retry_after=settings.retry_after,
        retry_max=settings.retry_max,
        continue_on_missing_permissions=settings.continue_on_missing_permissions,
    )
