"""Main CLI entry point for npm-mirror."""

import sys
import asyncio
from typing import List, Optional, Sequence
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TaskProgressColumn,
)
from rich.table import Table

from ..config.config import Config
from ..manifest.reader import load_manifest
from ..migration.engine import MigrationEngine
from ..migration.orchestrator import MigrationSummary
from ..models.package import PackageRef, PublishOutcome
from ..utils.logging import setup_logging

console = Console()


@click.group()
@click.version_option(version='0.1.0', prog_name='npm-mirror')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """npm-mirror - Copy npm packages and all their dependencies into a private registry."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    setup_logging('DEBUG' if verbose else 'INFO')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='npm-mirror.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]npm-mirror[/bold green]\nInitializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your registry details[/yellow]'
        )

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.argument('packages', nargs=-1)
@click.option(
    '--manifest',
    '-m',
    default='package.json',
    show_default=True,
    help='package.json or package-lock.json to read root packages from',
)
@click.option('--scope', help='Only migrate root packages with this prefix (e.g. @myorg)')
@click.option('--concurrency', type=int, help='Number of packages processed at once')
@click.option(
    '--dry-run',
    is_flag=True,
    help='Discover dependencies without publishing anything',
)
@click.pass_context
def migrate(
    ctx: click.Context,
    packages: Sequence[str],
    manifest: str,
    scope: Optional[str],
    concurrency: Optional[int],
    dry_run: bool,
) -> None:
    """Mirror PACKAGES (name@range) or the manifest's dependencies."""
    console.print(
        Panel.fit(
            '[bold blue]npm-mirror[/bold blue]\nStarting migration process...',
            border_style='blue',
        )
    )

    if dry_run:
        console.print(
            '[yellow]Running in dry-run mode - nothing will be published[/yellow]'
        )

    try:
        config = _load_config(ctx)

        _setup_logging_with_config(ctx, config)

        if dry_run:
            config.migration.dry_run = True
        if scope:
            config.migration.scope = scope
        if concurrency:
            config.migration.concurrency = concurrency

        roots = _collect_roots(config, packages, manifest)

        summary = asyncio.run(_run_migration(config, roots))
        if summary is not None:
            _display_migration_summary(summary)

    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check registry connectivity and destination login."""
    console.print(
        Panel.fit(
            '[bold cyan]npm-mirror[/bold cyan]\nValidating registries...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)
        engine = MigrationEngine(config)

        try:
            for label, url in (
                ('Source', config.source.url),
                ('Destination', config.destination.url),
            ):
                if not engine.client.test_connection(url):
                    raise ConnectionError(f'Cannot connect to {label.lower()} registry {url}')
                console.print(f'[green]✓[/green] {label} registry reachable: {url}')

            if config.migration.require_login:
                username = engine.client.whoami(config.destination.url)
                console.print(f'[green]✓[/green] Logged in to destination as {username}')
        finally:
            engine.close()

        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective migration configuration."""
    console.print(
        Panel.fit(
            '[bold magenta]npm-mirror[/bold magenta]\nMigration Status',
            border_style='magenta',
        )
    )

    try:
        config = _load_config(ctx)

        _setup_logging_with_config(ctx, config)

        table = Table(title='Migration Configuration')
        table.add_column('Setting', style='cyan')
        table.add_column('Value', style='green')

        migration = config.migration
        table.add_row('Source Registry', config.source.url)
        table.add_row('Destination Registry', config.destination.url)
        table.add_row('Scope', migration.scope or '-')
        table.add_row('Include Dev', '✓' if migration.include_dev_deps else '✗')
        table.add_row('Include Peer', '✓' if migration.include_peer_deps else '✗')
        table.add_row(
            'Include Optional', '✓' if migration.include_optional_deps else '✗'
        )
        table.add_row('Skip Existing', '✓' if migration.skip_existing else '✗')
        table.add_row('Concurrency', str(migration.concurrency))
        table.add_row('Max Retries', str(migration.max_retries))

        console.print(table)

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)

    default_paths = ['npm-mirror.yaml', 'npm-mirror.yml', '.npm-mirror.yaml']
    for path in default_paths:
        if Path(path).exists():
            return Config.from_file(path)

    return Config.from_env()


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _collect_roots(
    config: Config, packages: Sequence[str], manifest: str
) -> List[PackageRef]:
    """Root refs from explicit specs, or else from the manifest file."""
    if packages:
        return [PackageRef.parse(spec) for spec in packages]

    migration = config.migration
    return load_manifest(
        manifest,
        include_dev=migration.include_dev_deps,
        include_peer=migration.include_peer_deps,
        include_optional=migration.include_optional_deps,
        scope=migration.scope,
    )


async def _run_migration(config: Config, roots: List[PackageRef]) -> MigrationSummary:
    """Run the migration process with progress display."""
    operation_name = 'Dry run' if config.migration.dry_run else 'Migration'

    with Progress(
        SpinnerColumn(),
        TextColumn('[progress.description]{task.description}'),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f'[blue]{operation_name} starting...', total=1)

        def update_progress(current: int, total: int, description: str):
            progress.update(
                task,
                completed=current,
                total=max(total, 1),
                description=f'[blue]{description}',
            )

        engine = MigrationEngine(config, progress_callback=update_progress)

        try:
            summary = await engine.migrate(roots)
        except Exception as e:
            progress.update(task, description=f'[red]Failed: {e}')
            raise

        progress.update(task, description=f'[green]{operation_name} completed')

    console.print(f'[green]✓[/green] {operation_name} completed successfully')
    return summary


def _display_migration_summary(summary: MigrationSummary) -> None:
    """Display migration summary results."""
    if summary.no_dependencies:
        console.print('[yellow]No dependencies found to migrate.[/yellow]')
        return

    table = Table(title='Migration Summary')
    table.add_column('Discovered', style='blue')
    table.add_column('Published', style='green')
    table.add_column('Skipped', style='yellow')
    table.add_column('Failed', style='red')

    table.add_row(
        str(summary.total_discovered),
        str(summary.published),
        str(summary.skipped),
        str(summary.failed),
    )

    console.print(table)

    if summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'\n[blue]Migration Duration:[/blue] {duration}')

    if summary.cancelled:
        console.print('[yellow]Migration was cancelled before completion[/yellow]')

    errors = [
        f'{result.package}: {result.error_message}'
        for result in summary.results
        if result.outcome == PublishOutcome.FAILED
    ]
    if errors:
        console.print(f'\n[red]Errors ({len(errors)}):[/red]')
        for error in errors[:5]:
            console.print(f'  • {error}')
        if len(errors) > 5:
            console.print(f'  ... and {len(errors) - 5} more errors')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]Error: {e}[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
