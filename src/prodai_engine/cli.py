"""Command-line interface using Typer."""

from typing import Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from prodai_engine import __version__
from prodai_engine.logging import setup_logging

# Setup logging
setup_logging()

app = typer.Typer(
    name="prodai-engine",
    help="Prodai Engine - generation job pipeline CLI",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Prodai Engine v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Prodai Engine - process AI product image and video generation jobs."""
    pass


def _parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        console.print(f"[bold red]Invalid {label}: {value}[/bold red]")
        raise typer.Exit(code=1)


def _outcomes_table(outcomes: list, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Job ID", style="dim")
    table.add_column("Outcome", style="cyan")
    table.add_column("Status")
    table.add_column("Processed", justify="right")
    table.add_column("Completed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Error")

    for outcome in outcomes:
        table.add_row(
            str(outcome.job_id)[:8],
            outcome.kind.value,
            outcome.status.value,
            str(outcome.processed),
            str(outcome.completed),
            str(outcome.failed),
            (outcome.error_message or "")[:60],
        )
    return table


@app.command()
def process(
    job_id: str = typer.Argument(..., help="Generation job ID (UUID)"),
    batch: Optional[int] = typer.Option(None, "--batch", "-b", help="Units per sub-batch"),
    parallel: Optional[int] = typer.Option(None, "--parallel", "-p", help="Concurrent provider calls"),
    budget: Optional[int] = typer.Option(None, "--budget", help="Time budget in milliseconds"),
) -> None:
    """Process one generation job in this process."""
    from prodai_engine.errors import JobNotFoundError
    from prodai_engine.jobs.generation_tasks import resolve_options
    from prodai_engine.services.generation_worker import build_generation_worker
    from prodai_engine.utils import run_async

    job_uuid = _parse_uuid(job_id, "job ID")
    options = resolve_options(batch, parallel, budget)
    console.print(
        f"[bold blue]Processing job {job_uuid}[/bold blue] "
        f"[dim](batch={options.batch_size}, parallel={options.parallelism}, "
        f"budget={options.time_budget_ms}ms)[/dim]"
    )

    try:
        outcome = run_async(build_generation_worker().process_job(job_uuid, options))
    except JobNotFoundError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1)

    console.print(_outcomes_table([outcome], "Job Outcome"))


@app.command("process-due")
def process_due(
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="Due jobs to pull"),
    image_jobs: Optional[int] = typer.Option(None, "--image-jobs", help="Concurrent image jobs"),
    video_jobs: Optional[int] = typer.Option(None, "--video-jobs", help="Concurrent video jobs"),
    batch: Optional[int] = typer.Option(None, "--batch", "-b", help="Units per sub-batch"),
    parallel: Optional[int] = typer.Option(None, "--parallel", "-p", help="Concurrent provider calls"),
    budget: Optional[int] = typer.Option(None, "--budget", help="Time budget in milliseconds"),
) -> None:
    """Process the oldest pending or stalled jobs."""
    from prodai_engine.config import settings
    from prodai_engine.jobs.generation_tasks import resolve_options
    from prodai_engine.services.generation_worker import build_generation_worker
    from prodai_engine.utils import run_async

    options = resolve_options(batch, parallel, budget)
    outcomes = run_async(
        build_generation_worker().process_due_jobs(
            options,
            jobs=jobs or settings.generation_job_batch_size,
            image_job_concurrency=image_jobs or settings.image_job_concurrency,
            video_job_concurrency=video_jobs or settings.video_job_concurrency,
        )
    )

    if not outcomes:
        console.print("[yellow]No due jobs found.[/yellow]")
        return
    console.print(_outcomes_table(outcomes, f"Processed {len(outcomes)} job(s)"))


@app.command()
def retry(
    job_id: str = typer.Argument(..., help="Generation job ID (UUID)"),
    inline: bool = typer.Option(False, "--inline", help="Run here instead of queueing a task"),
) -> None:
    """Reset a failed job to pending and run it again."""
    from prodai_engine.config import settings
    from prodai_engine.db.session import SessionLocal
    from prodai_engine.repositories.jobs import SqlJobRepository
    from prodai_engine.services.generation_worker import (
        build_generation_worker,
        options_from_settings,
    )
    from prodai_engine.utils import run_async

    job_uuid = _parse_uuid(job_id, "job ID")
    repository = SqlJobRepository(SessionLocal)

    job = run_async(repository.get_job(job_uuid))
    if job is None:
        console.print(f"[bold red]Job not found: {job_id}[/bold red]")
        raise typer.Exit(code=1)
    if not job.is_retryable:
        console.print(f"[bold red]Job is not retryable (status: {job.status.value})[/bold red]")
        raise typer.Exit(code=1)

    if run_async(repository.reset_for_retry(job_uuid)) is None:
        console.print("[bold red]Job is no longer retryable[/bold red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Job {job_uuid} reset to pending[/green]")

    if inline:
        worker = build_generation_worker(repository=repository)
        outcome = run_async(worker.process_job(job_uuid, options_from_settings(settings)))
        console.print(_outcomes_table([outcome], "Job Outcome"))
        return

    from prodai_engine.jobs.generation_tasks import dispatch_job

    task_id = dispatch_job(job_uuid)
    console.print(f"[green]Task enqueued: {task_id}[/green]")


@app.command()
def cancel(
    job_id: str = typer.Argument(..., help="Generation job ID (UUID)"),
) -> None:
    """Cancel a pending or running job."""
    from prodai_engine.db.session import SessionLocal
    from prodai_engine.repositories.jobs import SqlJobRepository
    from prodai_engine.utils import run_async

    job_uuid = _parse_uuid(job_id, "job ID")
    if run_async(SqlJobRepository(SessionLocal).cancel_job(job_uuid)):
        console.print(f"[green]Job {job_uuid} cancelled[/green]")
    else:
        console.print("[bold red]Job not found or already finished[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def status(
    job_id: str = typer.Argument(..., help="Generation job ID (UUID)"),
) -> None:
    """Show a job and its units."""
    from prodai_engine.db.session import SessionLocal
    from prodai_engine.repositories.jobs import SqlJobRepository
    from prodai_engine.services.cost import estimate_job_cost
    from prodai_engine.utils import run_async

    job_uuid = _parse_uuid(job_id, "job ID")
    repository = SqlJobRepository(SessionLocal)
    job = run_async(repository.get_job(job_uuid))
    if job is None:
        console.print(f"[bold red]Job not found: {job_id}[/bold red]")
        raise typer.Exit(code=1)

    cost = estimate_job_cost(job)
    console.print(Panel.fit(
        f"[cyan]Type:[/cyan] {job.job_type.value}\n"
        f"[cyan]Status:[/cyan] {job.status.value}\n"
        f"[cyan]Progress:[/cyan] {job.completed_count} completed, {job.failed_count} failed "
        f"of {job.variation_count}\n"
        f"[cyan]Estimated cost:[/cyan] {cost.total_cost:.2f}\n"
        f"[cyan]Last error:[/cyan] {job.error_message or 'N/A'}",
        title=f"Job {job.id}",
        border_style="blue",
    ))

    units = run_async(repository.list_units(job_uuid))
    if units:
        table = Table(title="Units")
        table.add_column("#", justify="right")
        table.add_column("Type")
        table.add_column("Size", justify="right")
        table.add_column("Dimensions")
        table.add_column("Path", style="dim")
        for unit in units:
            dims = f"{unit.width}x{unit.height}" if unit.width and unit.height else "-"
            table.add_row(
                str(unit.variation_index + 1),
                unit.media_type.value,
                f"{unit.file_size / 1024:.0f} KB",
                dims,
                unit.storage_path,
            )
        console.print(table)


@app.command("compress-references")
def compress_references(
    limit: int = typer.Option(50, "--limit", "-l", help="Images to process (1-200)"),
) -> None:
    """Compress the largest oversized reference images."""
    from prodai_engine.adapters.storage import get_storage_gateway
    from prodai_engine.db.session import SessionLocal
    from prodai_engine.repositories.jobs import SqlJobRepository
    from prodai_engine.services.reference_compression import ReferenceCompressor
    from prodai_engine.utils import run_async

    compressor = ReferenceCompressor(SqlJobRepository(SessionLocal), get_storage_gateway())
    summary = run_async(compressor.compress_oversized(limit))

    table = Table(title="Reference Compression")
    table.add_column("Image ID", style="dim")
    table.add_column("Original", justify="right")
    table.add_column("Compressed", justify="right")
    table.add_column("Result")
    for result in summary.results:
        outcome = (
            f"[red]{result.error}[/red]"
            if result.error
            else ("[green]compressed[/green]" if result.was_compressed else "skipped")
        )
        table.add_row(
            str(result.image_id)[:8],
            f"{result.original_size / 1024:.0f} KB",
            f"{result.compressed_size / 1024:.0f} KB",
            outcome,
        )
    console.print(table)
    console.print(
        f"[bold]{summary.total}[/bold] total, [green]{summary.compressed}[/green] compressed, "
        f"{summary.skipped} skipped, [red]{summary.errors}[/red] errors"
    )


@app.command()
def api(
    host: Optional[str] = typer.Option(None, "--host", help="Bind host"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    from prodai_engine.config import settings

    uvicorn.run(
        "prodai_engine.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    app()
