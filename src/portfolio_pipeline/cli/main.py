"""Main CLI interface for the portfolio pipeline."""

import asyncio
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from ..analyzer.llm_client import VisionClient
from ..content.loader import ContentLoader, write_search_index
from ..core.config import Config, get_config, set_config
from ..core.exceptions import ConfigurationError, PortfolioError
from ..core.logger import get_logger, setup_logging
from ..models.photo import PhotoRecord
from ..pipeline.batch import BatchProcessor, BatchReport
from ..pipeline.progress import ProgressSummary
from ..pipeline.stages import StagedPipeline
from ..store.manage import add_photo, parse_filters, remove_photos
from ..store.photo_store import PhotoStore

console = Console()
logger = get_logger(__name__)


def _run(ctx: click.Context, coro):
    """Run a pipeline coroutine, turning pipeline errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        ctx.exit(1)
    except (PortfolioError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--config-file', type=click.Path(exists=True), help='Path to configuration file (YAML or TOML)')
@click.pass_context
def main(ctx: click.Context, debug: bool, config_file: Optional[str]):
    """Photo Portfolio CLI - turn Instagram exports into portfolio entries.

    Photos are classified and captioned by a vision model (local Ollama or a
    hosted OpenAI-compatible API) and merged into config/photos.yaml.

    \b
    Staged import:
    portfolio import ~/Downloads/instagram-export.zip
    portfolio process export.zip && portfolio classify && portfolio caption && portfolio merge

    \b
    Batch mode (resumable):
    portfolio batch --batch-size 25
    portfolio batch --status
    """
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    try:
        config = Config.load_from_file(Path(config_file)) if config_file else get_config()
    except Exception as e:
        console.print(f"[red]Failed to load configuration: {e}[/red]")
        ctx.exit(1)

    if debug:
        config.debug = True
        config.log_level = "DEBUG"
    set_config(config)
    setup_logging(config.log_level, config.resolved_log_dir)
    ctx.obj['config'] = config


@main.command()
@click.argument('export', type=click.Path(exists=True))
@click.option('--metadata', type=click.Path(exists=True), help='Instagram posts JSON (found automatically if omitted)')
@click.pass_context
def process(ctx: click.Context, export: str, metadata: Optional[str]):
    """Copy new photos from an export folder or .zip into the pending area."""
    config = ctx.obj['config']
    try:
        entries = StagedPipeline(config).process_export(export, metadata)
    except (PortfolioError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if not entries:
        console.print("[yellow]No new photos found to process.[/yellow]")
        return
    console.print(f"[green]Copied {len(entries)} new photos; manifest written to {config.paths.manifest_file}[/green]")
    console.print("Next step: portfolio classify")


@main.command()
@click.pass_context
def classify(ctx: click.Context):
    """Classify pending photos into gallery categories."""
    pipeline = StagedPipeline(ctx.obj['config'])
    classified = _run(ctx, pipeline.classify())

    table = Table(title="Classification Results")
    table.add_column("File", style="cyan", no_wrap=True)
    table.add_column("Category", style="green")
    table.add_column("Species", style="white")
    table.add_column("Status", style="magenta")
    for photo in classified:
        status = f"✗ {photo.classification_error}" if photo.classification_error else "✓"
        table.add_row(photo.filename, photo.classification.category, photo.classification.species or "", status)
    console.print(table)
    console.print("Next step: portfolio caption")


@main.command()
@click.pass_context
def caption(ctx: click.Context):
    """Generate titles and descriptions for classified photos."""
    pipeline = StagedPipeline(ctx.obj['config'])
    captioned = _run(ctx, pipeline.caption())

    table = Table(title="Captions")
    table.add_column("File", style="cyan", no_wrap=True)
    table.add_column("Title", style="green")
    table.add_column("Status", style="magenta")
    for photo in captioned:
        status = f"✗ {photo.caption_error}" if photo.caption_error else "✓"
        table.add_row(photo.filename, photo.caption.title, status)
    console.print(table)
    console.print("Next step: portfolio merge")


@main.command()
@click.pass_context
def merge(ctx: click.Context):
    """Publish captioned photos into photos.yaml and clean up intermediate files."""
    pipeline = StagedPipeline(ctx.obj['config'])
    added = _run(ctx, pipeline.merge())
    display_records(added, "Added Photos")


@main.command(name='import')
@click.argument('folder', type=click.Path(exists=True))
@click.option('--metadata', type=click.Path(exists=True), help='Instagram posts JSON (found automatically if omitted)')
@click.pass_context
def import_(ctx: click.Context, folder: str, metadata: Optional[str]):
    """Run process, classify, caption and merge in one go."""
    config = ctx.obj['config']
    console.print(f"[blue]Using {config.vision.provider} ({config.vision.model})[/blue]")
    if not config.cdn.enabled:
        console.print("[yellow]Cloudinary not configured. Photos stored locally only.[/yellow]")

    pipeline = StagedPipeline(config)
    added = _run(ctx, pipeline.run_import(folder, metadata))
    if not added:
        console.print("[yellow]No new photos to process.[/yellow]")
        return
    display_records(added, "Added Photos")


@main.command()
@click.option('--batch-size', type=click.IntRange(min=1), default=None, help='Photos per run (default from config, 50)')
@click.option('--folder', type=str, default=None, help='Only process one YYYYMM folder')
@click.option('--dry-run', is_flag=True, help='List the next batch without processing it')
@click.option('--status', 'show_status', is_flag=True, help='Show progress and cost so far')
@click.pass_context
def batch(ctx: click.Context, batch_size: Optional[int], folder: Optional[str], dry_run: bool, show_status: bool):
    """Classify, caption and publish photos from photos/posts/YYYYMM in resumable batches."""
    config = ctx.obj['config']
    processor = BatchProcessor(config)

    if show_status:
        try:
            summary = processor.status()
        except (PortfolioError, FileNotFoundError) as e:
            console.print(f"[red]Error: {e}[/red]")
            ctx.exit(1)
        display_status(summary)
        return

    async def run_batch() -> BatchReport:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Processing photos...", total=None)

            def update_progress(completed: int, total: int):
                progress.update(task, completed=completed, total=total)

            return await processor.run(batch_size, folder, dry_run, progress_callback=update_progress)

    report = _run(ctx, run_batch())
    display_batch_report(report)


@main.group()
def photos():
    """Manually add or remove entries in photos.yaml."""


@photos.command(name='add')
@click.option('--category', required=True, help='Category id from categories.yaml')
@click.option('--title', required=True, help='Photo title')
@click.option('--cloudinary-id', required=True, help='Cloudinary public id or delivery URL')
@click.option('--slug', default=None, help='Custom slug (defaults to the slugified title)')
@click.option('--description', default='', help='Description')
@click.option('--filters', default=None, help='Comma-separated filters')
@click.option('--species', default=None)
@click.option('--location', default=None)
@click.option('--date', 'date_taken', default=None, help='Date taken, YYYY-MM-DD (defaults to today)')
@click.option('--available-for-print/--not-for-print', default=True)
@click.option('--width', type=int, default=None)
@click.option('--height', type=int, default=None)
@click.option('--filename', default=None, help='Filename (defaults to <slug>.jpg)')
@click.option('--dry-run', is_flag=True, help='Show the entry without writing it')
@click.pass_context
def photos_add(ctx: click.Context, category: str, title: str, cloudinary_id: str, slug: Optional[str],
               description: str, filters: Optional[str], species: Optional[str], location: Optional[str],
               date_taken: Optional[str], available_for_print: bool, width: Optional[int],
               height: Optional[int], filename: Optional[str], dry_run: bool):
    """Add a photo that is already hosted on Cloudinary."""
    config = ctx.obj['config']
    try:
        store = PhotoStore(config.paths.photos_yaml).load()
        record = add_photo(
            store,
            category=category,
            title=title,
            cloudinary_id=cloudinary_id,
            valid_categories=ContentLoader(config.paths).category_ids(),
            slug=slug,
            description=description,
            filters=parse_filters(filters),
            species=species,
            location=location,
            date_taken=date_taken,
            available_for_print=available_for_print,
            width=width,
            height=height,
            filename=filename,
        )
    except PortfolioError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    console.print(f"Adding photo: {record.title} ({record.cloudinary_id})")
    console.print(f"  slug: {record.slug}")
    console.print(f"  id: {record.id}")
    if dry_run:
        console.print("[yellow]Dry run enabled. No changes written.[/yellow]")
        return
    store.save()
    console.print(f"[green]{config.paths.photos_yaml} updated.[/green]")


@photos.command(name='remove')
@click.argument('targets', nargs=-1, required=True)
@click.option('--dry-run', is_flag=True, help='Show matches without writing')
@click.pass_context
def photos_remove(ctx: click.Context, targets: tuple, dry_run: bool):
    """Remove photos by Cloudinary id or URL, slug, id or filename."""
    config = ctx.obj['config']
    try:
        store = PhotoStore(config.paths.photos_yaml).load()
        removed = remove_photos(store, targets)
    except PortfolioError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if not removed:
        console.print("[yellow]No matching photos found.[/yellow]")
        return

    console.print(f"Removing {len(removed)} photo(s):")
    for record in removed:
        console.print(f"  - {record.title} ({record.cloudinary_id or record.id})")
    if dry_run:
        console.print("[yellow]Dry run enabled. No changes written.[/yellow]")
        return
    store.save()
    console.print(f"[green]{config.paths.photos_yaml} updated.[/green]")


@main.command(name='search-index')
@click.option('--output', type=click.Path(), default=None, help='Output file (defaults to public/search-index.json)')
@click.pass_context
def search_index(ctx: click.Context, output: Optional[str]):
    """Write the JSON search index consumed by the site."""
    config = ctx.obj['config']
    target = Path(output) if output else config.paths.resolve(config.paths.photos_dir).parent / "search-index.json"
    try:
        count = write_search_index(ContentLoader(config.paths), target)
    except PortfolioError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)
    console.print(f"[green]Wrote {count} entries to {target}[/green]")


@main.command()
@click.pass_context
def status(ctx: click.Context):
    """Show the vision provider, store and work directory status."""
    config = ctx.obj['config']

    table = Table(title="Portfolio Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details", style="white")

    try:
        config.require_vision_credentials()
        connected = asyncio.run(VisionClient(config.vision).check_connection())
        vision_status = "✓ Connected" if connected else "✗ Unavailable"
    except ConfigurationError:
        vision_status = "✗ Missing API key"
    table.add_row("Vision model", vision_status, f"{config.vision.provider} ({config.vision.model})")

    try:
        photo_count = str(len(PhotoStore(config.paths.photos_yaml).load()))
        store_status = "✓"
    except PortfolioError as e:
        photo_count = str(e)
        store_status = "✗ Unreadable"
    table.add_row("photos.yaml", store_status, f"{photo_count} photos")

    table.add_row("Cloudinary", "✓ Configured" if config.cdn.enabled else "Not configured", config.cdn.cloud_name or "")

    stages = [
        ("Manifest", config.paths.manifest_file, "portfolio classify"),
        ("Classified", config.paths.classified_file, "portfolio caption"),
        ("Captioned", config.paths.captioned_file, "portfolio merge"),
    ]
    for label, path, next_step in stages:
        if path.exists():
            table.add_row(label, "Pending", f"next: {next_step}")

    console.print(table)


def display_records(records: List[PhotoRecord], title: str):
    """Display published records in a table."""
    if not records:
        console.print("[yellow]No new photos added.[/yellow]")
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Slug", style="white")
    table.add_column("Category", style="green")
    table.add_column("Title", style="magenta")
    for record in records:
        table.add_row(record.id, record.slug, record.category, record.title)
    console.print(table)


def display_batch_report(report: BatchReport):
    """Display what a batch run found and did."""
    overview = Table(title="Batch Photo Processor")
    overview.add_column("Metric", style="cyan")
    overview.add_column("Value", style="green")
    overview.add_row("Total photos found", str(report.total))
    overview.add_row("Already processed", str(report.already_processed))
    overview.add_row("Pending", str(report.pending))
    overview.add_row("This batch", str(len(report.batch)))
    console.print(overview)

    if report.pending == 0:
        console.print("[green]All photos have been processed![/green]")
        return

    if report.dry_run:
        console.print("[yellow]DRY RUN - would process these photos:[/yellow]")
        for i, candidate in enumerate(report.batch, 1):
            console.print(f"  {i}. {candidate.relative_path}")
        return

    table = Table(title="Batch Results")
    table.add_column("Photo", style="cyan", no_wrap=True)
    table.add_column("Category", style="green")
    table.add_column("Title", style="white")
    table.add_column("Cost", style="yellow")
    table.add_column("Status", style="magenta")
    for result in report.results:
        if result.ok and result.record is not None:
            table.add_row(result.candidate.relative_path, result.record.category, result.record.title,
                          f"${result.cost:.4f}", "✓ Success")
        elif result.ok:
            table.add_row(result.candidate.relative_path, "", "", f"${result.cost:.4f}", "Already in store")
        else:
            table.add_row(result.candidate.relative_path, "", "", "", f"✗ {result.error}")
    console.print(table)

    console.print(f"Successful: {report.successful}  Failed: {report.failed}  Remaining: {report.remaining}")
    console.print(f"Batch cost: ${report.batch_cost:.4f}")
    console.print(f"Total cost so far: ${report.total_cost:.4f}")
    if report.remaining > 0:
        console.print("Run again to process the next batch: portfolio batch")


def display_status(summary: ProgressSummary):
    """Display progress and cost summary."""
    table = Table(title="Batch Processing Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total photos", str(summary.total))
    table.add_row("Processed", str(summary.processed))
    table.add_row("  Successful", str(summary.successful))
    table.add_row("  Failed", str(summary.failed))
    table.add_row("Pending", str(summary.pending))
    table.add_row("Input tokens", f"{summary.tokens.input:,}")
    table.add_row("Output tokens", f"{summary.tokens.output:,}")
    table.add_row("Total cost", f"${summary.cost:.4f}")
    if summary.estimated_remaining_cost is not None:
        table.add_row("Estimated remaining", f"${summary.estimated_remaining_cost:.2f}")
    if summary.started_at:
        table.add_row("Started", summary.started_at)
    if summary.updated_at:
        table.add_row("Last update", summary.updated_at)
    console.print(table)

    if summary.recent_errors:
        console.print("[red]Recent errors:[/red]")
        for error in summary.recent_errors:
            console.print(f"  - {error.path}: {error.error}")


if __name__ == '__main__':
    main()
