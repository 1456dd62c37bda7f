"""
Handles the 'update' command: point an image repository at a new tag.

Also installed on its own as the `updater` console script:

    updater <repository> <new_tag> [--manifest PATH]...

Exit code 0 means the manifests now carry the tag (including the case
where they already did). Every failure class has its own exit code; see
imagebump.exit_codes.
"""

from pathlib import Path

import click

from ..cli_utils import add_common_options, standard_command
from ..config import configure_logging, load_config
from ..domain.manifest import UpdateRequest
from ..output import console, emit
from ..services.update_service import UpdateService


def _unique_paths(paths):
    # Two spellings of one file (relative, `..`, symlink) are loaded once
    unique = []
    seen = set()
    for path in paths:
        path = Path(path).expanduser()
        key = path.resolve()
        if key not in seen:
            seen.add(key)
            unique.append(path)
    return tuple(unique)


def _print_summary(summary) -> None:
    """Human-readable report of an update."""
    for result in summary.results:
        if result.changed:
            console.print(
                f"[green]updated[/green] {result.path}: "
                f"{result.occurrences} occurrence(s), was {result.previous_tag or 'untagged'}"
            )
        elif result.occurrences:
            console.print(f"[dim]unchanged[/dim] {result.path}: already at {summary.new_tag}")
        else:
            console.print(f"[dim]unchanged[/dim] {result.path}: no references to {summary.repository}")

    if summary.dry_run and summary.diff:
        click.echo(summary.diff, nl=False)
    if summary.commit:
        where = f"{summary.commit.remote}/{summary.commit.branch}" if summary.commit.pushed else "local branch"
        console.print(f"[bold]{summary.repository}:{summary.new_tag}[/bold] -> {where} at {summary.commit.sha[:12]}")
    elif not summary.changed:
        console.print(f"Nothing to do for {summary.repository}:{summary.new_tag}")


@click.command(name='update')
@click.argument('repository')
@click.argument('new_tag')
@add_common_options('manifest')
@click.option('--dry-run', is_flag=True, help='Show the diff; write and commit nothing')
@click.option('--no-push', is_flag=True, help='Commit locally without pushing')
@click.option('--remote', default=None, help='Git remote to push to (default: git.remote)')
@click.option('--branch', default=None, help='Remote branch to push to (default: git.branch or current branch)')
@click.option('--verify-registry', is_flag=True, help='Fail unless the registry has REPOSITORY:NEW_TAG')
@add_common_options('config', 'json', 'quiet', 'verbose')
@standard_command
def update_handler(repository, new_tag, manifests, dry_run, no_push, remote, branch,
                   verify_registry, config_path, json_output, quiet, verbose):
    """Point every reference to REPOSITORY in the manifests at NEW_TAG.

    References are matched on the exact repository name wherever an
    `image:` field appears, so `app` never touches `app-worker`. The
    change is written atomically, committed with a message naming the
    repository and tag, and pushed. A push rejected because another run
    got there first is retried on top of the new upstream.

    Examples:

    \b
        updater ghcr.io/acme/app v1.4.2 -m deploy/app.yaml
        updater ghcr.io/acme/app v1.4.2 -m base/app.yaml -m overlays/prod/app.yaml
        imagebump update ghcr.io/acme/app v1.4.2 --dry-run
    """
    config = load_config(config_path)
    configure_logging(config, verbose=verbose)

    if remote:
        config['git']['remote'] = remote
    if branch:
        config['git']['branch'] = branch

    request = UpdateRequest(
        manifest_paths=_unique_paths(manifests or config['manifests']['paths']),
        repository=repository,
        new_tag=new_tag,
    )

    service = UpdateService(config)
    summary = service.update(
        request,
        dry_run=dry_run,
        push=not no_push,
        verify_registry=verify_registry,
    )

    if quiet:
        return
    if json_output:
        emit(summary.results + [summary])
        if summary.dry_run and summary.diff:
            emit([{'type': 'diff', 'diff': summary.diff}])
    else:
        _print_summary(summary)
