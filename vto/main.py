import typer
from pathlib import Path
from typing import List, Optional
from rich.console import Console
from vto.config.loader import load_config
from vto.domain.errors import InvalidRequest
from vto.domain.models import Outcome, TranscodeRequest
from vto.infrastructure.capabilities import resolve_capabilities
from vto.infrastructure.event_bus import EventBus
from vto.infrastructure.logging import setup_logging
from vto.infrastructure.profiles import ProfileResolver
from vto.pipeline.orchestrator import JobOrchestrator
from vto.ui.console import ConsoleReporter, make_progress, profiles_table

app = typer.Typer(help="VTO (Video Transcode Orchestrator) - ffmpeg jobs with live progress and ETA")
console = Console()

@app.command()
def transcode(
    inputs: List[Path] = typer.Argument(..., help="Media files to transcode"),
    mode: str = typer.Option("standard", "--mode", "-m", help="Profile mode: fast, standard, compressed, hardware"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (single input only)"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", help="Directory for converted files"),
    config_path: Optional[Path] = typer.Option(Path("conf/vto.yaml"), "--config", "-c", help="Path to YAML config"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="Override number of concurrent jobs"),
    hw: Optional[List[str]] = typer.Option(None, "--hw", help="Declare a hardware encoder family (repeatable)"),
    stall_timeout: Optional[float] = typer.Option(None, "--stall-timeout", help="Seconds without telemetry before failing"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Transcode one or more files and show progress until every job finishes."""
    if output is not None and len(inputs) > 1:
        typer.secho("Error: --output can only be used with a single input.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)

    try:
        config = load_config(config_path)
    except Exception as e:
        typer.secho(f"Error: invalid config {config_path}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)

    # Apply CLI overrides
    if jobs: config.general.max_concurrent_jobs = jobs
    if output_dir is not None: config.general.output_dir = output_dir
    if stall_timeout: config.general.stall_timeout = stall_timeout
    if hw: config.platform.hardware_encoders = list(hw)
    if debug: config.general.debug = True

    logger = setup_logging(config.general.log_dir, debug=config.general.debug)
    logger.info(f"VTO started: inputs={len(inputs)}, mode={mode}")
    logger.info(f"Config: jobs={config.general.max_concurrent_jobs}, stall_timeout={config.general.stall_timeout}, debug={config.general.debug}")

    bus = EventBus()
    progress = make_progress(console)
    reporter = ConsoleReporter(bus, progress)
    orchestrator = JobOrchestrator(config=config, event_bus=bus)

    handles = []
    failed = 0
    try:
        with progress:
            for path in inputs:
                try:
                    handle = orchestrator.create(TranscodeRequest(input_path=path, mode=mode, output_path=output))
                except InvalidRequest as e:
                    progress.console.print(f"[red]Skipping {path}: {e}")
                    failed += 1
                    continue
                reporter.track(handle.job_id, path.name)
                orchestrator.launch(handle.job_id)
                handles.append(handle)

            for handle in handles:
                result = handle.wait()
                if result is None or result.outcome != Outcome.SUCCESS:
                    failed += 1
                orchestrator.forget(handle.job_id)
    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        orchestrator.shutdown(cancel_running=True, wait=False)
        raise typer.Exit(code=130)

    orchestrator.shutdown(cancel_running=False)
    logger.info(f"VTO finished: {len(inputs) - failed} succeeded, {failed} failed")
    if failed:
        raise typer.Exit(code=1)

@app.command()
def profiles(
    config_path: Optional[Path] = typer.Option(Path("conf/vto.yaml"), "--config", "-c", help="Path to YAML config"),
    hw: Optional[List[str]] = typer.Option(None, "--hw", help="Declare a hardware encoder family (repeatable)"),
):
    """Show the profile each mode resolves to on this machine."""
    try:
        config = load_config(config_path)
    except Exception as e:
        typer.secho(f"Error: invalid config {config_path}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    if hw:
        config.platform.hardware_encoders = list(hw)
    capabilities = resolve_capabilities(config.platform, config.general.ffmpeg_bin)
    families = ", ".join(sorted(capabilities.hardware_encoders)) or "none"
    console.print(f"Hardware encoders: {families}")
    console.print(profiles_table(ProfileResolver().available_profiles(capabilities)))

if __name__ == "__main__":
    app()
