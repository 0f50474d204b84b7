"""Command-line classification of local image files.

Usage:
    wastelens-classify path/to/bottle.jpg [more images ...]

Model location, input size and labels come from the same WASTELENS_*
environment variables as the API.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from wastelens.config import LOG_FORMAT, get_settings
from wastelens.ml.errors import WasteLensError
from wastelens.ml.labels import ClassLabelMap
from wastelens.ml.model_host import ModelHost
from wastelens.ml.preprocessing import decode_image
from wastelens.ml.resources import build_resource_store
from wastelens.ml.service import ClassificationService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wastelens-classify",
        description="Classify images into waste material categories.",
    )
    parser.add_argument("images", nargs="+", type=Path, help="Image files to classify")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every class score")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    host: ModelHost | None = None
    try:
        settings = get_settings()
        host = ModelHost.from_settings(settings, build_resource_store(settings))
        service = ClassificationService.from_host(host, settings, ClassLabelMap.from_labels(settings.labels))
        for path in args.images:
            image = decode_image(path.read_bytes(), settings.max_image_pixels)
            result = service.classify(image)
            for label, score in zip(service.labels, result.scores, strict=False):
                logger.debug("%s: %.6f", label, score)
            print(f"{path}")
            print(f"Predicted Class: {result.label} ({result.index})")
            print(f"Confidence: {result.confidence:.2%}")
    except (WasteLensError, OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    finally:
        if host is not None:
            host.release()
    return 0


if __name__ == "__main__":
    sys.exit(main())
