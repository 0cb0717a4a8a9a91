"""dirtylabel CLI: label open pull requests that have merge conflicts."""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Annotated

import tomlkit
import typer
from rich import print as rprint
from rich.markup import escape
from rich.table import Table

from dirtylabel.logs import configure_logging
from dirtylabel.providers.base import RepositoryHost
from dirtylabel.providers.github import GitHubProvider
from dirtylabel.reconcile import check_dirty
from dirtylabel.settings import CONFIG_PATH, DirtyLabelSettings, _list_profiles, build_context, get_settings

app = typer.Typer(help="dirtylabel: flag open pull requests that have merge conflicts", no_args_is_help=True)

ProfileOpt = Annotated[
    str | None,
    typer.Option("--profile", "-P", help="Profile name from ~/.config/dirtylabel/config.toml"),
]


class OutputFormat(str, Enum):
    json = "json"
    table = "table"


def get_host(settings: DirtyLabelSettings) -> RepositoryHost:
    return GitHubProvider(settings)


def _write_github_output(statuses_json: str) -> None:
    """Expose the result as a step output when running inside GitHub Actions."""
    output_path = os.environ.get("GITHUB_OUTPUT")
    if not output_path:
        return
    with Path(output_path).open("a") as fh:
        fh.write(f"prDirtyStatuses={statuses_json}\n")


def _render_table(statuses: dict[int, bool]) -> None:
    table = Table(title="Pull Request Status")
    table.add_column("PR", style="cyan")
    table.add_column("Status")
    for number, dirty in sorted(statuses.items()):
        table.add_row(f"#{number}", "[red]dirty[/red]" if dirty else "[green]clean[/green]")
    rprint(table)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("check")
def check(
    profile: ProfileOpt = None,
    repo: Annotated[str | None, typer.Option("--repo", "-r", help="owner/repo")] = None,
    dirty_label: Annotated[
        str | None, typer.Option("--dirty-label", "-l", help="Label applied to conflicting PRs")
    ] = None,
    remove_on_dirty_label: Annotated[
        str | None, typer.Option("--remove-on-dirty-label", help="Label removed from conflicting PRs")
    ] = None,
    comment_on_dirty: Annotated[
        str | None, typer.Option("--comment-on-dirty", help="Comment posted when a PR becomes dirty")
    ] = None,
    comment_on_clean: Annotated[
        str | None, typer.Option("--comment-on-clean", help="Comment posted when a PR becomes clean")
    ] = None,
    retry_after: Annotated[
        float | None, typer.Option("--retry-after", min=0, help="Seconds to wait while mergeability is unknown")
    ] = None,
    retry_max: Annotated[int | None, typer.Option("--retry-max", min=0, help="Number of allowed retries")] = None,
    continue_on_missing_permissions: Annotated[
        bool,
        typer.Option(
            "--continue-on-missing-permissions",
            help="Log and skip mutations the token is not allowed to make",
        ),
    ] = False,
    base_branch: Annotated[
        str | None, typer.Option("--base-branch", "-b", help="Only check PRs targeting this branch")
    ] = None,
    output_format: Annotated[OutputFormat, typer.Option("--format", "-f", help="Result format")] = OutputFormat.json,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log raw API payloads")] = False,
) -> None:
    """Label every open PR that is in conflict and unlabel the ones that are not."""
    configure_logging(verbose)
    settings = get_settings(
        profile,
        repository=repo,
        dirty_label=dirty_label,
        remove_on_dirty_label=remove_on_dirty_label,
        comment_on_dirty=comment_on_dirty,
        comment_on_clean=comment_on_clean,
        retry_after=retry_after,
        retry_max=retry_max,
        continue_on_missing_permissions=True if continue_on_missing_permissions else None,
        base_branch=base_branch,
    )

    try:
        host = get_host(settings)
        statuses = check_dirty(host, build_context(settings))
    except RuntimeError as exc:
        rprint(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc

    pr_dirty_statuses = {str(number): dirty for number, dirty in statuses.items()}
    _write_github_output(json.dumps(pr_dirty_statuses))

    if output_format is OutputFormat.table:
        _render_table(statuses)
    else:
        typer.echo(json.dumps({"prDirtyStatuses": pr_dirty_statuses}))


@app.command("set-default")
def set_default(
    profile: Annotated[str, typer.Argument(help="Profile name to set as default")],
    create: Annotated[
        bool, typer.Option("--create", help="Add an empty profile section when it does not exist yet")
    ] = False,
) -> None:
    """Point default_profile in ~/.config/dirtylabel/config.toml at a profile."""
    doc = tomlkit.load(CONFIG_PATH.open()) if CONFIG_PATH.exists() else tomlkit.document()
    profiles = _list_profiles(doc)

    if profile not in profiles:
        if profile in doc or profile == "default_profile":
            rprint(f"[red]'{escape(profile)}' is a top-level setting in {CONFIG_PATH}, not a profile[/red]")
            raise typer.Exit(1)
        if not create:
            available = profiles or "(none)"
            rprint(f"[red]Profile '{escape(profile)}' not found in {CONFIG_PATH}. Available: {available}[/red]")
            rprint("Pass --create to add it.")
            raise typer.Exit(1)

    # default_profile goes in before any new table so it stays a top-level key
    doc["default_profile"] = profile
    if profile not in profiles:
        doc.add(profile, tomlkit.table())
        rprint(escape(f"Added an empty [{profile}] section. Set dirty_label and repository there."))

    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    rprint(f'[green]✓[/green] Default profile set to "{escape(profile)}" in {CONFIG_PATH}')


@app.command("config-show")
def config_show(profile: ProfileOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(profile, validate=False)

    def mask(val: str | None, prefix: str = "") -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"{prefix}...{val[-5:]}"

    def show(val: object) -> str:
        return "[dim](not set)[/dim]" if val in (None, "") else str(val)

    table = Table(title="dirtylabel Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("repository", show(settings.repository))
    table.add_row("api_url", settings.api_url)
    table.add_row("github_auth", settings.github_auth)
    table.add_row(
        "github_token",
        mask(
            settings.github_token.get_secret_value() if settings.github_token else None,
            prefix="ghp_",
        ),
    )
    table.add_row("dirty_label", show(settings.dirty_label))
    table.add_row("remove_on_dirty_label", show(settings.remove_on_dirty_label))
    table.add_row("comment_on_dirty", show(settings.comment_on_dirty))
    table.add_row("comment_on_clean", show(settings.comment_on_clean))
    table.add_row("retry_after", f"{settings.retry_after}s")
    table.add_row("retry_max", str(settings.retry_max))
    table.add_row("continue_on_missing_permissions", str(settings.continue_on_missing_permissions))
    table.add_row("base_branch", show(settings.base_branch))

    rprint(table)
