"""Command line interface for syd."""

from pathlib import Path
from typing import Dict, Optional, Tuple

import click
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from . import __version__
from .core.backup import BackupManager, ChangeStatus
from .core.config import Config, default_config_path, render_config
from .core.errors import SydError
from .core.logging import console, setup_logging
from .core.restore import RestoreManager
from .core.sync import RemoteSync

STATE_LABELS: Dict[ChangeStatus, str] = {
    ChangeStatus.UNCHANGED: "[green]✓ synced",
    ChangeStatus.MODIFIED: "[yellow]⚠ modified locally",
    ChangeStatus.ADDED: "[red]✗ not backed up",
    ChangeStatus.REMOVED: "[magenta]no longer tracked",
    ChangeStatus.MISSING: "[red]✗ source missing",
    ChangeStatus.UNREADABLE: "[red]✗ unreadable",
}


def _load_config(ctx: click.Context) -> Config:
    config = Config.load(ctx.obj["config_path"])
    config.ensure_valid()
    return config


def _fail(error: SydError) -> None:
    console.print(f"[red]Error: {escape(str(error))}")
    raise click.Abort()


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file (default: $SYD_CONFIG or ~/.config/syd/syd.conf)",
)
@click.option("--debug", is_flag=True, help="Show debug logging")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write logs to this file")
@click.version_option(__version__, prog_name="syd")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], debug: bool, log_file: Optional[str]) -> None:
    """Back up dotfiles to a git repository and restore them on demand.

    syd copies the files listed in its configuration into a local git
    repository, commits them as a snapshot and pushes the snapshot to a
    remote. On another machine the same configuration restores them.

    Main commands:

      init      Create the configuration and the backup repository
      backup    Snapshot tracked files and push them to the remote
      restore   Restore tracked files from the latest or a given snapshot
      list      List tracked files and their sync state

    Run 'syd COMMAND --help' for more information on a specific command.
    """
    setup_logging(debug=debug, log_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path or default_config_path()


@cli.command()
@click.option("--remote", help="Remote repository URL")
@click.option("--branch", "-b", help="Branch snapshots are committed to (default: main)")
@click.option("--folder", help="Backup folder holding the local repository")
@click.option(
    "--path", "-p", "paths", multiple=True, help="Path to track (can specify multiple times)"
)
@click.option("--force", is_flag=True, help="Overwrite an existing configuration file")
@click.option("--clone", is_flag=True, help="Clone the remote instead of creating an empty repository")
@click.pass_context
def init(
    ctx: click.Context,
    remote: Optional[str],
    branch: Optional[str],
    folder: Optional[str],
    paths: Tuple[str, ...],
    force: bool,
    clone: bool,
) -> None:
    """Create the configuration file and the backup repository.

    Examples:

      # Start tracking a couple of dotfiles
      syd init -p ~/.zshrc -p ~/.config/nvim --remote git@github.com:me/dotfiles.git

      # Set up a new machine from an existing remote
      syd init --remote git@github.com:me/dotfiles.git --clone
    """
    config_path: Path = ctx.obj["config_path"]
    try:
        if config_path.exists() and not force:
            console.print(
                f"[yellow]Configuration {escape(str(config_path))} already exists "
                "(use --force to overwrite)"
            )
        else:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(
                render_config(paths=list(paths), folder=folder, remote=remote, branch=branch)
            )
            console.print(f"[green]Wrote configuration to {escape(str(config_path))}")

        config = _load_config(ctx)
        if clone:
            if not config.remote:
                raise click.UsageError("--clone requires a remote")
            repo = RemoteSync(config).clone_or_pull()
            ready = repo.path if repo else config.folder
            console.print(f"[green]Backup repository ready at {escape(str(ready))}")
        else:
            repo = BackupManager(config, console).init_repository()
            console.print(f"[green]Backup repository ready at {escape(str(repo.path))}")
    except SydError as e:
        _fail(e)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Show what would be backed up without making any changes")
@click.option("--no-push", is_flag=True, help="Commit locally but do not push to the remote")
@click.option("--message", "-m", help="Commit message for the snapshot")
@click.option("--no-prune", is_flag=True, help="Keep files that are no longer tracked")
@click.option(
    "--zip-export",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also export the snapshot as a zip file",
)
@click.pass_context
def backup(
    ctx: click.Context,
    dry_run: bool,
    no_push: bool,
    message: Optional[str],
    no_prune: bool,
    zip_export: Optional[Path],
) -> None:
    """Snapshot tracked files into the backup repository.

    The backup command will:
    1. Compare every tracked file with the copy in the repository
    2. Copy new and changed files and verify each copy
    3. Remove files that are no longer tracked (unless --no-prune)
    4. Commit the snapshot and push it to the remote (unless --no-push)

    Examples:

      syd backup
      syd backup --dry-run
      syd backup -m "Switch to fish" --zip-export ~/dotfiles.zip
    """
    try:
        config = _load_config(ctx)
        manager = BackupManager(config, console)
        result = manager.backup(
            dry_run=dry_run,
            push=False if no_push else None,
            message=message,
            prune=not no_prune,
            zip_export=zip_export,
        )
    except SydError as e:
        _fail(e)
        return

    if result.committed:
        console.print(
            f"\n[bold]Snapshot {result.commit[:8] if result.commit else ''} created: "
            f"{result.count(ChangeStatus.ADDED)} added, "
            f"{result.count(ChangeStatus.MODIFIED)} modified, "
            f"{result.count(ChangeStatus.REMOVED)} removed"
        )
    if result.pushed:
        console.print("Changes pushed to remote repository")
    if result.failed:
        console.print(f"[red]Failed to back up: {escape(', '.join(result.failed))}")
        ctx.exit(1)


@cli.command()
@click.argument("paths", nargs=-1)
@click.option("--revision", "-r", help="Commit, tag or branch to restore from (default: latest)")
@click.option("--force", "-f", is_flag=True, help="Overwrite local files that differ from the backup")
@click.option("--dry-run", is_flag=True, help="Show what would be restored without making any changes")
@click.option("--no-pull", is_flag=True, help="Do not fetch from the remote first")
@click.pass_context
def restore(
    ctx: click.Context,
    paths: Tuple[str, ...],
    revision: Optional[str],
    force: bool,
    dry_run: bool,
    no_pull: bool,
) -> None:
    """Restore tracked files from the backup repository.

    PATHS optionally limits the restore to the given tracked paths.

    By default, existing files that differ from the backup are not
    overwritten unless --force is used.

    Examples:

      # Restore everything from the latest snapshot
      syd restore

      # Restore only the neovim configuration, overwriting local changes
      syd restore ~/.config/nvim --force

      # Restore from an older snapshot
      syd restore --revision HEAD~3
    """
    try:
        config = _load_config(ctx)
        manager = RestoreManager(config, console)
        result = manager.restore(
            paths=list(paths) or None,
            revision=revision,
            force=force,
            dry_run=dry_run,
            pull=not no_pull,
        )
    except SydError as e:
        _fail(e)
        return

    if result.skipped and not dry_run:
        console.print(
            f"[yellow]{len(result.skipped)} file(s) differ locally and were skipped "
            "(use --force to overwrite)"
        )


@cli.command(name="list")
@click.option("--verbose", "-v", is_flag=True, help="Also show the repository tree")
@click.pass_context
def list_files(ctx: click.Context, verbose: bool) -> None:
    """List tracked files and their sync state.

    Examples:

      syd list
      syd list --verbose
    """
    try:
        config = _load_config(ctx)
        manager = BackupManager(config, console)
        changes = manager.plan()
    except SydError as e:
        _fail(e)
        return

    if not changes:
        console.print("[yellow]No tracked files. Add paths to \\[files].paths in the configuration.")
        return

    table = Table(title="Tracked Files")
    table.add_column("Source", style="cyan")
    table.add_column("Repository Path", style="magenta")
    table.add_column("State")
    for change in changes:
        if change.tracked is not None:
            source = str(change.tracked.source)
        elif change.status == ChangeStatus.MISSING:
            source = change.repo_path
        else:
            source = "-"
        repo_path = "-" if change.status == ChangeStatus.MISSING else change.repo_path
        table.add_row(escape(source), escape(repo_path), STATE_LABELS[change.status])
    console.print(table)

    if verbose:
        console.print(_repository_tree(manager.backup_dir))


def _repository_tree(root: Path) -> Tree:
    tree = Tree(f"[bold]{escape(str(root))}")
    if not root.exists():
        return tree
    nodes: Dict[Path, Tree] = {root: tree}
    for item in sorted(root.rglob("*")):
        rel = item.relative_to(root)
        if rel.parts[0] == ".git":
            continue
        parent = nodes.get(item.parent)
        if parent is None:
            continue
        if item.is_dir():
            nodes[item] = parent.add(f"[bold blue]{escape(item.name)}/")
        else:
            parent.add(f"[green]{escape(item.name)}")
    return tree


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the state of the backup repository."""
    try:
        config = _load_config(ctx)
        manager = BackupManager(config, console)
        repo = manager.repo

        console.print("\n[bold]=== Syd Backup Status ===\n")
        console.print(f"Backup Directory: {escape(str(repo.path))}")
        console.print("Status: [green]✓ Exists" if repo.path.exists() else "Status: [red]✗ Does not exist")
        console.print(f"\nRemote URL: {escape(config.remote or '(none)')}")

        if repo.exists():
            console.print(f"Current Branch: {repo.get_current_branch()}")
            commits = repo.log(limit=1)
            if commits:
                last = commits[0]
                console.print(
                    f"Last Snapshot: {last['hash'][:8]} {last['date']} {escape(last['message'])}"
                )
            else:
                console.print("Last Snapshot: (none)")
            lines = repo.status_porcelain()
            modified = sum(1 for line in lines if not line.startswith("??"))
            untracked = sum(1 for line in lines if line.startswith("??"))
            console.print(f"Modified files: {modified}")
            console.print(f"Untracked files: {untracked}")
        else:
            console.print("Repository: [red]✗ Not initialized")

        counts = manager.summary(manager.plan())
        console.print(
            f"\nTracked files: {counts['unchanged']} synced, {counts['modified']} modified, "
            f"{counts['added']} not backed up, {counts['missing']} missing, "
            f"{counts['unreadable']} unreadable"
        )
    except SydError as e:
        _fail(e)


@cli.command()
@click.option("--limit", "-n", default=10, show_default=True, help="Number of snapshots to show")
@click.pass_context
def log(ctx: click.Context, limit: int) -> None:
    """List recent snapshots."""
    try:
        config = _load_config(ctx)
        repo = BackupManager(config, console).repo
        commits = repo.log(limit=limit) if repo.exists() else []
    except SydError as e:
        _fail(e)
        return

    if not commits:
        console.print("[yellow]No snapshots found.")
        return

    table = Table(title="Snapshots")
    table.add_column("Commit", style="cyan")
    table.add_column("Date", style="yellow")
    table.add_column("Message", style="green")
    table.add_column("Restore Command", style="blue")
    for commit in commits:
        short = commit["hash"][:8]
        table.add_row(
            short, commit["date"], escape(commit["message"]), f"syd restore --revision {short}"
        )
    console.print(table)


def main() -> None:
    """Entry point for the syd CLI."""
    cli()


if __name__ == "__main__":
    main()
