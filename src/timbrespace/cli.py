"""
Command-line analysis of an audio file.

Replays the file through the real-time engine at the analyser frame rate
and writes the analysis report as JSON.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from timbrespace.config import EngineConfig, EventConfig
from timbrespace.core.stream import RealtimeAnalyzer
from timbrespace.io.exporter import ReportExporter
from timbrespace.io.source import AnalyserFrameSource

logger = logging.getLogger(__name__)


def analyze_file(
    audio_path: Path,
    output_path: Path,
    fps: float = 60.0,
    max_duration: Optional[float] = None,
    seed: Optional[int] = None,
) -> RealtimeAnalyzer:
    """
    Analyse an audio file frame by frame and export the report.

    Args:
        audio_path: Path to input audio file.
        output_path: Path for the JSON report.
        fps: Analyser frames per second.
        max_duration: Maximum duration in seconds (None for full audio).
        seed: Seed for peak event placement jitter.

    Returns:
        The analyzer holding the final state.
    """
    source = AnalyserFrameSource(fps=fps)
    analyzer = RealtimeAnalyzer(EngineConfig(events=EventConfig(seed=seed)))

    y, sr = source.load(audio_path)
    duration = len(y) / sr
    if max_duration is not None:
        duration = min(duration, max_duration)

    for frame in source.frames(y, sr, max_duration=max_duration):
        analyzer.tick(frame)
    logger.info("Analysed %d frames of %s", analyzer.frame_count, audio_path.name)

    ReportExporter().export_json(
        analyzer, duration, output_path, file_name=audio_path.name
    )
    return analyzer


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Analyse timbre, harmony and rhythm of an audio file"
    )

    parser.add_argument(
        "input",
        type=Path,
        help="Input audio file (wav, mp3, flac)",
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output JSON report (default: <input>_analysis.json)",
    )

    parser.add_argument(
        "-f", "--fps",
        type=float,
        default=60.0,
        help="Analyser frames per second (default: 60)",
    )

    parser.add_argument(
        "--max-duration",
        type=float,
        default=None,
        help="Analyse at most this many seconds",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for peak event placement",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log per-frame debug output",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.input.exists():
        sys.exit(f"Error: Audio file not found: {args.input}")

    output = args.output
    if output is None:
        output = args.input.with_name(f"{args.input.stem}_analysis.json")

    analyzer = analyze_file(
        audio_path=args.input,
        output_path=output,
        fps=args.fps,
        max_duration=args.max_duration,
        seed=args.seed,
    )

    snapshot = analyzer.snapshot
    print(
        f"{args.input.name}: key {snapshot.song_key}, "
        f"{len(analyzer.history)} samples, "
        f"predictability {snapshot.predictability:.2f} -> {output}"
    )


if __name__ == "__main__":
    main()
