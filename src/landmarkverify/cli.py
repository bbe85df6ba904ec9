#!/usr/bin/env python3
"""CLI interface for landmark-verify."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .capture import ImageCaptureManager
from .config import CaptureConfig, Config
from .geospatial import GeospatialManager
from .matcher import ImageMatchingEngine
from .models import PoseSnapshot
from .verifier import LandmarkVerifier


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def _load_poses(path: str) -> list[PoseSnapshot]:
    """Read a JSON list of pose snapshots."""
    with Path(path).open() as f:
        data = json.load(f)
    if not isinstance(data, list):
        msg = f"Pose file must contain a JSON list, got {type(data).__name__}"
        raise ValueError(msg)
    return [PoseSnapshot.model_validate(item) for item in data]


def _describe(args: argparse.Namespace) -> int:
    capture = ImageCaptureManager()
    engine = ImageMatchingEngine()

    bitmap = capture.load_bitmap(args.image)
    if not args.full_size:
        bitmap = capture.create_thumbnail(bitmap)
    descriptor = engine.extract_descriptor(bitmap)

    payload = descriptor.model_dump(mode="json")
    if not args.histogram:
        payload.pop("histogram")
    _print_json(payload)
    return 0


def _compare(args: argparse.Namespace) -> int:
    capture = ImageCaptureManager()
    engine = ImageMatchingEngine()

    descriptors = []
    for image in (args.image_a, args.image_b):
        bitmap = capture.load_bitmap(image)
        if not args.full_size:
            bitmap = capture.create_thumbnail(bitmap)
        descriptors.append(engine.extract_descriptor(bitmap))

    result = engine.compare_descriptors(descriptors[0], descriptors[1])
    _print_json(result.model_dump(mode="json"))
    return 0 if result.is_match else 2


def _gate(args: argparse.Namespace) -> int:
    gate = GeospatialManager()
    rows = []
    for pose in _load_poses(args.poses):
        sample = gate.ingest(pose)
        rows.append({
            "latitude": pose.latitude,
            "longitude": pose.longitude,
            "horizontal_accuracy": pose.horizontal_accuracy,
            "is_accurate": sample.is_accurate if sample is not None else False,
            "status": gate.get_accuracy_status().value,
            "ready": gate.is_ready,
        })
    _print_json(rows)
    return 0


def _verify(args: argparse.Namespace) -> int:
    config = Config(
        capture=CaptureConfig(capture_interval_s=args.interval),
        top_n=args.top_n,
        require_location=args.require_location,
        stop_on_match=not args.continue_after_match,
        save_samples=args.save_samples,
    )

    gate = None
    if args.poses:
        gate = GeospatialManager(config.geospatial)
        for pose in _load_poses(args.poses):
            gate.ingest(pose)
        logging.getLogger(__name__).info(f"Location status: {gate.describe_accuracy()}")

    verifier = LandmarkVerifier(args.references, args.output, config=config, gate=gate)
    verifier.precompute_reference_descriptors(force_recompute=args.rebuild_cache)
    results = verifier.verify_video(args.video)

    verified = next((r for r in results if r.verified), None)
    _print_json({
        "verified": verified is not None,
        "frames_processed": len(results),
        "result": verified.model_dump(mode="json") if verified is not None else None,
    })
    return 0 if verified is not None else 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Verify AR landmarks from camera frames and geospatial accuracy",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    describe = sub.add_parser("describe", help="Print the descriptor of an image",
                              formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    describe.add_argument("image", type=str, help="Path to image file")
    describe.add_argument("--histogram", action="store_true",
                          help="Include the 768-bin histogram in the output")
    describe.add_argument("--full-size", action="store_true",
                          help="Skip thumbnail downscaling before extraction")
    describe.set_defaults(func=_describe)

    compare = sub.add_parser("compare", help="Compare two images",
                             formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    compare.add_argument("image_a", type=str, help="First image")
    compare.add_argument("image_b", type=str, help="Second image")
    compare.add_argument("--full-size", action="store_true",
                         help="Skip thumbnail downscaling before extraction")
    compare.set_defaults(func=_compare)

    gate = sub.add_parser("gate", help="Classify a JSON list of pose snapshots",
                          formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    gate.add_argument("poses", type=str, help="JSON file with pose snapshots")
    gate.set_defaults(func=_gate)

    verify = sub.add_parser("verify", help="Verify a camera recording against reference images",
                            formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    verify.add_argument("video", type=str, help="Path to camera recording")
    verify.add_argument("references", type=str, help="Folder of reference landmark images")
    verify.add_argument("output", type=str, help="Output directory")
    verify.add_argument("--interval", type=float, default=2.0,
                        help="Seconds of video between captured frames")
    verify.add_argument("--top-n", type=int, default=3,
                        help="Number of reference candidates reported per frame")
    verify.add_argument("--poses", type=str, default=None,
                        help="JSON file with pose snapshots fed to the accuracy gate")
    verify.add_argument("--require-location", action="store_true",
                        help="Only verify when the accuracy gate is ready")
    verify.add_argument("--continue-after-match", action="store_true",
                        help="Process the whole video instead of stopping at the first match")
    verify.add_argument("--save-samples", action="store_true",
                        help="Save captured thumbnails as JPEG")
    verify.add_argument("--rebuild-cache", action="store_true",
                        help="Recompute reference descriptors even if cached")
    verify.set_defaults(func=_verify)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for landmark-verify.

    Parses command-line arguments and runs the selected command.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    try:
        return int(args.func(args))
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
