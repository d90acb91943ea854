"""
chunkvault CLI

Command-line interface for storing and restoring chunked, encrypted files.

Usage:
    chunkvault keygen                 # Create a key pair
    chunkvault chunk PATH             # Store a file or every file in a directory
    chunkvault restore NAME -o OUT    # Reconstruct a stored file
    chunkvault restore --all -o DIR   # Reconstruct everything
    chunkvault verify NAME            # Decode and check a stored file
    chunkvault list                   # List stored files
    chunkvault gc                     # Remove orphaned artifacts
    chunkvault status                 # Show storage statistics
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.panel import Panel
from rich.logging import RichHandler
from rich.markup import escape

from .config import Config, load_config
from .errors import ChunkVaultError
from .file.storage import (
    FileArtifactStore, ManifestStore, collect_orphans, get_storage_stats
)
from .keys import generate_keypair
from .pipeline import ChunkWriter, Reassembler

console = Console()


def setup_logging(verbose: bool = False, level_name: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def _run(coro):
    """Run a coroutine, turning chunkvault errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except ChunkVaultError as e:
        console.print(f"[red]✗ {e.code}: {escape(e.message)}[/red]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(1)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.option('--data-dir', default=None, help='Data directory')
@click.pass_context
def cli(ctx, verbose, config_path, data_dir):
    """chunkvault - store files as size-bounded, encrypted, verified chunks."""
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ChunkVaultError as e:
        console.print(f"[red]✗ {e.code}: {escape(e.message)}[/red]")
        sys.exit(1)

    if data_dir:
        config.data_dir = Path(data_dir)

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
def keygen():
    """Generate a new key pair."""
    public_key, private_key = generate_keypair()
    console.print(Panel.fit(
        f"[bold green]Key Pair Generated[/bold green]\n\n"
        f"CHUNKVAULT_PUBLIC_KEY=[cyan]{public_key}[/cyan]\n"
        f"CHUNKVAULT_PRIVATE_KEY=[yellow]{private_key}[/yellow]\n\n"
        f"[dim]Keep the private key out of version control.[/dim]",
        title="Keys"
    ))


@cli.command()
@click.argument('input_path', type=click.Path(exists=True))
@click.option('--name', '-n', default=None, help='Logical name (single file only)')
@click.pass_context
def chunk(ctx, input_path, name):
    """Store a file, or every file in a directory."""
    config: Config = ctx.obj['config']
    input_path = Path(input_path)

    async def run():
        writer = ChunkWriter.from_config(config)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            task = progress.add_task("Chunking...", total=100)

            def update_progress(p):
                progress.update(
                    task,
                    completed=p.progress_percent,
                    description=f"{p.file_name} ({p.completed_chunks}/{p.total_chunks} chunks)"
                )

            if input_path.is_dir():
                manifests = await writer.process_directory(input_path, update_progress)
            else:
                manifests = [await writer.plan_and_encode(input_path, name, update_progress)]

        for m in manifests:
            console.print(
                f"[green]✓[/green] {m.original_name}: "
                f"{format_size(m.original_size)} → {format_size(m.stored_size)} "
                f"in {m.chunk_count} artifact(s)"
            )

    _run(run())


@cli.command()
@click.argument('name', required=False)
@click.option('--all', 'restore_everything', is_flag=True, help='Restore every stored file')
@click.option('--output', '-o', type=click.Path(), required=True,
              help='Output file (or directory with --all)')
@click.pass_context
def restore(ctx, name, restore_everything, output):
    """Reconstruct a stored file."""
    config: Config = ctx.obj['config']
    output_path = Path(output)

    if not name and not restore_everything:
        raise click.UsageError('Give a NAME or --all')

    async def run():
        reassembler = Reassembler.from_config(config)

        if restore_everything:
            results = await reassembler.restore_all(output_path)
            for r in results:
                console.print(f"[green]✓[/green] {r['file']}: {format_size(r['size'])} → {r['path']}")
            if not results:
                console.print("[yellow]No stored files[/yellow]")
            return

        manifest = await reassembler.manifest_store.load(name)
        if output_path.is_dir():
            target = output_path / manifest.original_name
        else:
            target = output_path
        path = await reassembler.reconstruct_to_file(manifest, target)
        console.print(f"[green]✓ Restored to: {path}[/green]")

    _run(run())


@cli.command()
@click.argument('name')
@click.pass_context
def verify(ctx, name):
    """Decode every artifact of a stored file and check all digests."""
    config: Config = ctx.obj['config']

    async def run():
        reassembler = Reassembler.from_config(config)
        manifest = await reassembler.manifest_store.load(name)

        missing = await reassembler.missing_artifacts(manifest)
        if missing:
            console.print(f"[red]✗ {len(missing)} artifact(s) missing:[/red]")
            for location in missing:
                console.print(f"  [dim]{escape(location)}[/dim]")
            return False

        await reassembler.verify(manifest)
        console.print(f"[green]✓ {name} verified ({manifest.chunk_count} artifact(s))[/green]")
        return True

    if not _run(run()):
        sys.exit(1)


@cli.command('list')
@click.pass_context
def list_files(ctx):
    """List stored files."""
    config: Config = ctx.obj['config']

    async def run():
        store = ManifestStore(config.manifests_dir)
        manifests = await store.list_manifests()

        if not manifests:
            console.print("[yellow]No stored files[/yellow]")
            return

        table = Table(title="Stored Files")
        table.add_column("Name", style="cyan")
        table.add_column("Size", justify="right", style="yellow")
        table.add_column("Stored", justify="right", style="yellow")
        table.add_column("Chunks", justify="right")
        table.add_column("Created", style="dim")

        for m in manifests:
            table.add_row(
                m.original_name,
                format_size(m.original_size),
                format_size(m.stored_size),
                str(m.chunk_count) if m.is_chunked else "-",
                m.created_at,
            )

        console.print(table)

    _run(run())


@cli.command()
@click.pass_context
def gc(ctx):
    """Remove artifacts no manifest references."""
    config: Config = ctx.obj['config']

    async def run():
        removed = await collect_orphans(
            FileArtifactStore(config.artifacts_dir),
            ManifestStore(config.manifests_dir),
        )
        console.print(f"[green]Removed {len(removed)} orphaned artifact(s)[/green]")

    _run(run())


@cli.command()
@click.pass_context
def status(ctx):
    """Show storage status."""
    config: Config = ctx.obj['config']

    async def run():
        stats = await get_storage_stats(
            FileArtifactStore(config.artifacts_dir),
            ManifestStore(config.manifests_dir),
        )

        console.print(Panel.fit(
            f"[bold]Storage[/bold]\n"
            f"  Data dir: [blue]{config.data_dir}[/blue]\n"
            f"  Manifests: [yellow]{stats.manifest_count}[/yellow]\n"
            f"  Artifacts: [yellow]{stats.total_artifacts}[/yellow]\n"
            f"  Size: [yellow]{format_size(stats.total_bytes)}[/yellow]\n\n"
            f"[bold]Limits[/bold]\n"
            f"  Max artifact size: [yellow]{format_size(config.max_artifact_size)}[/yellow]\n"
            f"  Chunk size: [yellow]{format_size(config.chunk_size)}[/yellow]\n"
            f"  Compression level: [yellow]{config.compression_level}[/yellow]\n\n"
            f"[bold]Keys[/bold]\n"
            f"  Public key: {'[green]set[/green]' if config.public_key else '[red]missing[/red]'}\n"
            f"  Private key: {'[green]set[/green]' if config.private_key else '[red]missing[/red]'}",
            title="chunkvault Status"
        ))

    _run(run())


def main(argv: Optional[list] = None):
    cli(args=argv)


if __name__ == '__main__':
    main()
