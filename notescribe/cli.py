"""Command-line interface for NoteScribe.

Provides commands for:
- transcribe: Convert audio to MIDI
- info: Show audio file information
- inspect: List the notes in a MIDI file
"""

import logging
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

app = typer.Typer(
    name="notescribe",
    help="Audio to MIDI Transcription",
    rich_markup_mode="markdown",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


@app.command()
def transcribe(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Output MIDI file path"
    ),
    mode: str = typer.Option(
        "full", "-m", "--mode", help="Analysis mode: full/fast/fallback/high_res"
    ),
    algorithm: str = typer.Option(
        "mono", "-a", "--algorithm", help="Detection: mono/poly_salience/poly_hps/hybrid/rhythm"
    ),
    sensitivity: float = typer.Option(
        30.0, "-s", "--sensitivity", help="Sensitivity threshold (10-1000, higher needs louder input)"
    ),
    harmonic_rejection: float = typer.Option(
        0.5, "--harmonic-rejection", help="Harmonic rejection strength (0-1, 0 = off)"
    ),
    high_pass: float = typer.Option(
        0.0, "--high-pass", help="High-pass cutoff in Hz (0 = off)"
    ),
    low_pass: float = typer.Option(
        0.0, "--low-pass", help="Low-pass cutoff in Hz (0 = off)"
    ),
    min_velocity: int = typer.Option(
        25, "--min-velocity", help="Minimum note velocity (1-127)"
    ),
    min_duration: float = typer.Option(
        0.06, "--min-duration", help="Minimum note duration in seconds"
    ),
    chunk_size: int = typer.Option(
        131072, "--chunk-size", help="Samples per analysis chunk"
    ),
    tempo: float = typer.Option(
        0.0, "-t", "--tempo", help="Override tempo (BPM). 0 = auto-detect"
    ),
    normalize: bool = typer.Option(
        False, "--normalize", help="Peak-normalize the input before analysis"
    ),
    inline: bool = typer.Option(
        False, "--inline", help="Analyze on the main process instead of a worker"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output results as JSON (for scripting)"
    ),
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="Verbose output"
    ),
):
    """Transcribe an audio file to MIDI.

    **Examples:**

        notescribe transcribe song.wav

        notescribe transcribe chords.flac -a poly_salience -o chords.mid

        notescribe transcribe drums.wav -a rhythm --json
    """
    from .core import AnalysisCancelled, AnalysisConfig, NoteScribeError
    from .input import AudioLoader
    from .output import MIDIEncoder
    from .transcriber import Transcriber

    _setup_logging(verbose)

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    # Default output path
    if output is None:
        output = input_file.with_suffix(".mid")

    try:
        config = AnalysisConfig(
            chunk_size_samples=chunk_size,
            analysis_mode=mode,
            sensitivity_threshold=sensitivity,
            detection_algorithm=algorithm,
            harmonic_rejection_strength=harmonic_rejection,
            high_pass_hz=high_pass,
            low_pass_hz=low_pass,
            min_velocity=min_velocity,
            min_duration_seconds=min_duration,
            use_worker=not inline,
        )

        if not json_output:
            console.print(f"[blue]Loading audio:[/blue] {input_file}")
        waveform = AudioLoader(normalize=normalize).load_waveform(str(input_file))
        if verbose and not json_output:
            console.print(f"  Duration: {waveform.duration:.2f}s, Sample rate: {waveform.sample_rate}Hz")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
            disable=json_output,
        ) as progress:
            task = progress.add_task("Initializing", total=100)

            def on_progress(report):
                description = report.stage
                if report.eta_seconds is not None:
                    description += f" (ETA {report.eta_seconds:.0f}s)"
                progress.update(task, completed=report.percent, description=description)

            transcriber = Transcriber(progress_callback=on_progress)
            transcriber.start(waveform, config)
            try:
                while transcriber.is_running:
                    time.sleep(0.1)
            except KeyboardInterrupt:
                transcriber.cancel()
            result = transcriber.wait()

    except AnalysisCancelled:
        console.print("[yellow]Analysis cancelled.[/yellow]")
        raise typer.Exit(130)
    except NoteScribeError as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        raise typer.Exit(1)

    midi = result.midi
    bpm = result.bpm
    if tempo > 0:
        bpm = tempo
        midi = MIDIEncoder(bpm).encode(result.notes)

    # Ensure output directory exists
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(midi)

    if json_output:
        data = result.to_dict()
        data.update({"input": str(input_file), "output": str(output), "bpm": bpm})
        console.print_json(data=data)
        return

    if result.algorithm == "rhythm":
        console.print(f"  Detected {len(result.onset_times)} onsets")
    else:
        console.print(f"  Detected {len(result.notes)} notes ({result.raw_event_count} raw events)")
    console.print(f"  Tempo: {bpm:.0f} BPM")
    if verbose:
        console.print(f"  Backend: {result.backend}, {result.elapsed_seconds:.2f}s")
        if result.notes:
            _show_notes_table(result.notes)
    console.print(f"[green]Wrote:[/green] {output}")


@app.command()
def info(
    input_file: Path = typer.Argument(..., help="Input audio file"),
):
    """Show information about an audio file."""
    from .core import DecodeError
    from .input import AudioLoader

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    try:
        header = AudioLoader().info(str(input_file))
    except DecodeError as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Audio Info:[/bold] {input_file.name}")
    console.print(f"  Format: {header.format}")
    console.print(f"  Duration: {header.duration:.2f} seconds")
    console.print(f"  Sample rate: {header.sample_rate} Hz")
    console.print(f"  Channels: {header.channels}")
    console.print(f"  Samples: {header.frames:,}")


@app.command()
def inspect(
    midi_file: Path = typer.Argument(..., help="MIDI file to read"),
):
    """List the notes in a MIDI file."""
    from .output import read_midi_notes

    if not midi_file.exists():
        console.print(f"[red]Error: File not found: {midi_file}[/red]")
        raise typer.Exit(1)

    notes = read_midi_notes(midi_file)
    console.print(f"\n[bold]{midi_file.name}:[/bold] {len(notes)} notes")
    if notes:
        _show_notes_table(notes)


def _show_notes_table(notes):
    """Display notes in a table."""
    table = Table(title="Detected Notes")
    table.add_column("Pitch", style="cyan")
    table.add_column("Onset (s)", style="green")
    table.add_column("Duration (s)", style="yellow")
    table.add_column("Velocity", style="magenta")

    for note in notes:
        table.add_row(
            note.pitch_name,
            f"{note.time:.3f}",
            f"{note.duration:.3f}",
            str(note.velocity),
        )

    console.print(table)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
