"""
Document Scanner - Main Entry Point
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path


def setup_logging(level: str = "INFO", log_file=None):
    """Configure root logging from settings"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )


def parse_corners(value: str):
    """Parse 'x,y;x,y;x,y;x,y' into a list of points"""
    points = []
    for pair in value.split(";"):
        pair = pair.strip()
        if not pair:
            continue
        x, y = pair.split(",")
        points.append((float(x), float(y)))
    return points


def build_exporter(settings, output_dir=None):
    from scanenhance.export import ResultExporter

    uniform = (settings.target_width, settings.target_height) if settings.uniform_size else None
    return ResultExporter(
        output_dir=output_dir or settings.output_dir,
        format=settings.output_format,
        quality=settings.jpeg_quality,
        uniform_size=uniform,
        pdf_page_size=(settings.target_width, settings.target_height),
        pdf_dpi=settings.pdf_dpi,
    )


def run_process(settings, input_path: str, output_dir=None, corners=None):
    """Process a single photo and save the result"""
    from scanenhance.errors import ScanError
    from scanenhance.export import encode_image
    from scanenhance.pipeline import PipelineConfig, process_file

    exporter = build_exporter(settings, output_dir)
    try:
        result = process_file(input_path, corners, PipelineConfig.from_settings(settings))
    except ScanError as e:
        print(f"Failed: {e}")
        sys.exit(1)

    source = Path(input_path)
    output_path = exporter.output_path_for(source, source.name)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(encode_image(result.image, exporter.format, exporter.quality))

    width, height = result.size
    print(f"Success! {width}x{height} -> {output_path}")
    if result.used_fallback:
        print("  (no document edges found, used inset image bounds)")


async def run_batch(settings, inputs, output_dir=None, pdf_path=None) -> int:
    """Process several photos through the batch orchestrator"""
    from scanenhance.batch import BatchOrchestrator, DocumentStatus
    from scanenhance.pipeline import DocumentPipeline, PipelineConfig

    exporter = build_exporter(settings, output_dir)
    orchestrator = BatchOrchestrator(
        pipeline=DocumentPipeline(PipelineConfig.from_settings(settings)),
        exporter=exporter,
        auto_start=settings.auto_processing,
    )
    try:
        await orchestrator.enqueue_many(inputs)
        # Joins the batch auto_start already began, or starts one
        await orchestrator.start_processing()

        failures = 0
        for entry in orchestrator.entries:
            if entry.status == DocumentStatus.COMPLETED:
                path = exporter.export(entry)
                print(f"  ✓ {entry.name} -> {path}")
            else:
                failures += 1
                print(f"  ✗ {entry.name}: {entry.error_message}")

        if pdf_path:
            images = [e.result_image for e in orchestrator.completed_entries()]
            if images:
                exporter.export_pdf(images, pdf_path)
                print(f"PDF written to {pdf_path} ({len(images)} page(s))")
            else:
                print("No completed documents, PDF not written")

        return failures
    finally:
        orchestrator.shutdown()


def run_detect(settings, input_path: str):
    """Print the detected corners as JSON"""
    from scanenhance.errors import ScanError
    from scanenhance.ingestion import DocumentLoader
    from scanenhance.pipeline import DocumentPipeline, PipelineConfig

    pipeline = DocumentPipeline(PipelineConfig.from_settings(settings))
    try:
        document = DocumentLoader().load(input_path)
        detection = pipeline.detector.locate(document.image)
    except ScanError as e:
        print(f"Failed: {e}")
        sys.exit(1)

    print(json.dumps({
        "width": document.width,
        "height": document.height,
        "corners": detection.quad.to_list(),
        "confidence": detection.confidence,
        "fallback": detection.used_fallback,
    }, indent=2))


def main():
    parser = argparse.ArgumentParser(
        description="Document Scanner - Detect, flatten and enhance photos of documents"
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Process command
    process_parser = subparsers.add_parser("process", help="Process a single photo")
    process_parser.add_argument("input", help="Input image (JPG, PNG, TIFF, BMP)")
    process_parser.add_argument("-o", "--output", default=None, help="Output directory")
    process_parser.add_argument(
        "--corners",
        type=parse_corners,
        default=None,
        help="Manual corners 'x,y;x,y;x,y;x,y' (top-left, top-right, bottom-right, bottom-left)",
    )

    # Batch command
    batch_parser = subparsers.add_parser("batch", help="Process several photos")
    batch_parser.add_argument("inputs", nargs="+", help="Input images")
    batch_parser.add_argument("-o", "--output", default=None, help="Output directory")
    batch_parser.add_argument("--pdf", default=None, help="Also write all results to this PDF")

    # Detect command
    detect_parser = subparsers.add_parser("detect", help="Print detected document corners")
    detect_parser.add_argument("input", help="Input image")

    args = parser.parse_args()

    from config.settings import settings

    setup_logging(args.log_level or settings.log_level, settings.log_file)

    if args.command == "process":
        run_process(settings, args.input, args.output, args.corners)
    elif args.command == "batch":
        failures = asyncio.run(run_batch(settings, args.inputs, args.output, args.pdf))
        if failures:
            sys.exit(1)
    elif args.command == "detect":
        run_detect(settings, args.input)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
