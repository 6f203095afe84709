from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from statistics import mean
from typing import Dict, List, Optional

from .algorithms.base import BackendKind
from .compositing import CompositePolicy
from .errors import BackgroundRemovalError
from .pipeline import BackgroundRemover, RemovalConfig

BACKEND_CHOICES = {
    "auto": None,
    "gpu": BackendKind.HIGH_PERF_GPU,
    "portable": BackendKind.PORTABLE_COMPUTE,
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="On-device background remover with automatic GPU/portable backend selection.",
    )
    parser.add_argument(
        "--input-dir",
        type=Path,
        required=True,
        help="Directory containing source images.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory where transparent PNG cutouts will be written.",
    )
    parser.add_argument(
        "--weights-dir",
        type=Path,
        default=Path("~/.cache/localrembg").expanduser(),
        help="Directory used to cache downloaded model weights.",
    )
    parser.add_argument(
        "--local-models-dir",
        type=Path,
        default=None,
        help="Directory searched for <model-id>.onnx before downloading. Enables local model lookup.",
    )
    parser.add_argument(
        "--device-id",
        type=int,
        default=0,
        help="GPU device index used by the GPU execution provider.",
    )
    parser.add_argument(
        "--backend",
        choices=list(BACKEND_CHOICES),
        default="auto",
        help="Force a backend instead of probing the platform.",
    )
    parser.add_argument(
        "--tensorrt",
        dest="use_tensorrt",
        action="store_true",
        help="Try the TensorRT execution provider before CUDA.",
    )
    parser.add_argument(
        "--hard-threshold",
        type=float,
        default=None,
        help="Binary cutout: alpha is 255 where the matte >= threshold, else 0. Default keeps soft edges.",
    )
    parser.add_argument(
        "--init-timeout",
        type=float,
        default=None,
        help="Seconds to wait for the model to load before giving up.",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite outputs even if the file already exists.",
    )
    parser.add_argument(
        "--json",
        dest="json_report",
        type=Path,
        default=None,
        help="Optional path to write a JSON timing report.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RemovalConfig:
    hard = args.hard_threshold is not None
    return RemovalConfig(
        weights_dir=args.weights_dir.expanduser(),
        local_models_dir=args.local_models_dir.expanduser() if args.local_models_dir else None,
        allow_local_models=args.local_models_dir is not None,
        device_id=args.device_id,
        use_tensorrt=args.use_tensorrt,
        force_backend=BACKEND_CHOICES[args.backend],
        composite_policy=CompositePolicy.HARD if hard else CompositePolicy.SOFT,
        hard_threshold=args.hard_threshold if hard else 0.5,
        init_timeout=args.init_timeout,
    )


def run(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    args.input_dir = args.input_dir.expanduser()
    args.output_dir = args.output_dir.expanduser()

    if not args.input_dir.exists():
        raise SystemExit(f"Input directory {args.input_dir} does not exist.")

    with BackgroundRemover(build_config(args)) as remover:
        try:
            handle = remover.initialize()
            print(f"[+] Using model {handle.descriptor.id} on {handle.backend_kind.value}")
            timings = remover.process_directory(
                args.input_dir,
                args.output_dir,
                overwrite=args.overwrite,
            )
        except BackgroundRemovalError as exc:
            raise SystemExit(f"Background removal failed: {exc}") from exc

    if not timings:
        print("    No images processed (perhaps outputs already exist?).")
        return

    total_time = sum(timings.values())
    avg_time = mean(timings.values())
    print(
        f"    Processed {len(timings)} images | total {total_time:.2f}s | avg {avg_time:.3f}s"
    )

    if args.json_report:
        report: Dict[str, object] = {
            "model": handle.descriptor.id,
            "backend": handle.backend_kind.value,
            "images": len(timings),
            "total_seconds": total_time,
            "avg_seconds": avg_time,
            "per_image": timings,
        }
        args.json_report.parent.mkdir(parents=True, exist_ok=True)
        with args.json_report.open("w", encoding="utf-8") as handle_out:
            json.dump(report, handle_out, indent=2)
        print(f"[+] Wrote timing report to {args.json_report}")


if __name__ == "__main__":
    run()
