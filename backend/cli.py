"""Command-line diarization of a single audio file.

    echo-diarize --audio meeting.wav \\
                 --segment-model segmentation-3.0.onnx \\
                 --embedding-model embedding-1.0.onnx \\
                 --max-speakers 3 --output result.json

Lower thresholds detect more speakers; if only one speaker is found try
--threshold 0.05, if too many try a higher value.
"""

import os
import sys
import argparse
import logging
from typing import Optional

from config import create_audio_adapter, create_inference_adapters, create_progress_adapter, get_config
from domain.errors import AudioLoadError, InitializationError
from domain.models import DiarizeOptions
from mappers import result_to_response
from post_processing import compute_speaker_statistics, format_time
from use_cases.diarize import DiarizeAudioUseCase

logger = logging.getLogger("echo_diarize")

VERSION = "1.0.0"


def build_parser() -> argparse.ArgumentParser:
    cfg = get_config()
    parser = argparse.ArgumentParser(
        prog="echo-diarize",
        description="Speaker diarization with ONNX segmentation and embedding models",
    )
    parser.add_argument("--audio", required=True, help="Input audio file")
    parser.add_argument("--segment-model", default=cfg.segment_model_path, help="Segmentation ONNX model")
    parser.add_argument("--embedding-model", default=cfg.embedding_model_path, help="Embedding ONNX model")
    parser.add_argument("--max-speakers", type=int, default=cfg.max_speakers, help="Maximum speakers (default: %(default)s)")
    parser.add_argument("--threshold", type=float, default=cfg.threshold,
                        help="Speaker similarity threshold, clamped to [0.01, 0.7] (default: %(default)s)")
    parser.add_argument("--sample-rate", type=int, default=cfg.sample_rate, help="Processing sample rate")
    parser.add_argument("--output", help="Output file (default: stdout)")
    parser.add_argument("--verbose", "--debug", action="store_true", help="Verbose output with detailed progress")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser


def _print_summary(segments) -> None:
    stats = compute_speaker_statistics(segments)
    print(f"Detected {len(stats)} speakers:", file=sys.stderr)
    for speaker_id, data in stats.items():
        print(
            f"   Speaker {speaker_id}: {data['segment_count']} segments, "
            f"{data['total_duration']:.1f}s total",
            file=sys.stderr,
        )
        own = [s for s in segments if s.speaker_id == speaker_id]
        for seg in own[:3]:
            print(f"     {format_time(seg.start_time)} - {format_time(seg.end_time)}", file=sys.stderr)
        if len(own) > 3:
            print(f"     ... and {len(own) - 3} more segments", file=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    for label, path in (
        ("Audio file", args.audio),
        ("Segmentation model", args.segment_model),
        ("Embedding model", args.embedding_model),
    ):
        if not os.path.exists(path):
            logger.error(f"{label} not found: {path}")
            return 1

    cfg = get_config()
    segmentation, embedding = create_inference_adapters(cfg)
    use_case = DiarizeAudioUseCase(
        segmentation=segmentation,
        embedding=embedding,
        progress=create_progress_adapter(),
        embedding_seconds=cfg.embedding_seconds,
    )

    try:
        use_case.load(
            args.segment_model,
            args.embedding_model,
            device=cfg.provider,
            intra_op_threads=cfg.intra_op_threads,
        )
        waveform = create_audio_adapter(cfg).load_waveform(args.audio, args.sample_rate)
    except (InitializationError, AudioLoadError) as e:
        logger.error(e.message)
        return 1

    options = DiarizeOptions(
        threshold=args.threshold,
        max_speakers=args.max_speakers,
        sample_rate=args.sample_rate,
    )
    result = use_case.diarize(waveform, options)

    if not result.segments:
        logger.error("No segments generated")
        return 1

    if args.verbose:
        _print_summary(result.segments)

    response = result_to_response(
        result,
        audio_path=args.audio,
        segment_model=args.segment_model,
        embedding_model=args.embedding_model,
    )
    payload = response.model_dump_json(indent=2)

    if args.output:
        try:
            with open(args.output, "w") as f:
                f.write(payload + "\n")
            logger.info(f"Results written to: {args.output}")
            return 0
        except OSError as e:
            logger.error(f"Failed to write output file {args.output}: {e}")
            return 1

    print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
