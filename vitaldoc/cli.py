"""Command-line interface for the vital-event document pipeline.

Runs recognition, form extraction and the generative analysis tasks on
saved documents, processes folders in batch, and reads back analysis
history. Results are printed as JSON on stdout or written to ``-o``; logs
go to stderr.
"""

import argparse
import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from vitaldoc.errors import VitalDocError
from vitaldoc.pipeline.orchestrator import PipelineOrchestrator
from vitaldoc.pipeline.records import PipelineTask
from vitaldoc.utils.config import load_config
from vitaldoc.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = (
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.tiff",
    "*.tif",
    "*.pdf",
    "*.txt",
    "*.json",
)
# Arguments naming files that must exist before the pipeline starts.
_FILE_ARGS = ("file", "data_file", "record_file", "record_data")


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported document files in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _json_object(value: str) -> dict[str, Any]:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise argparse.ArgumentTypeError(f"invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise argparse.ArgumentTypeError("expected a JSON object")
    return parsed


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise VitalDocError(f"{path} is not valid JSON: {exc}") from exc


def build_orchestrator(config_path: Path | None) -> PipelineOrchestrator:
    """Load configuration, set up logging and wire the pipeline."""
    config = load_config(config_path)
    setup_logging(config.log_level, stream=sys.stderr)
    return PipelineOrchestrator.from_config(config)


def _emit(payload: Any, output: Path | None) -> None:
    text = json.dumps(payload, indent=2, default=str, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        print(f"Output written to {output}", file=sys.stderr)
    else:
        print(text)


def _print_summary(summary: dict[str, Any]) -> None:
    """Print batch processing summary to stderr."""
    print(f"\n{'=' * 50}", file=sys.stderr)
    print(f"Batch {summary['task']} Complete", file=sys.stderr)
    print(f"{'=' * 50}", file=sys.stderr)
    print(f"Total:      {summary['total_files']}", file=sys.stderr)
    print(f"Successful: {summary['successful']}", file=sys.stderr)
    print(f"Failed:     {summary['failed']}", file=sys.stderr)


# Each command returns (payload, succeeded).


def _cmd_recognize(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    result = orchestrator.recognize(
        args.file,
        language=args.language,
        regions=args.region,
        record_ref=args.record,
    )
    if isinstance(result, list):
        return [r.to_dict() for r in result], all(r.success for r in result)
    return result.to_dict(), result.success


def _cmd_form(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    result = orchestrator.extract_form(
        args.file,
        template=args.template,
        language=args.language,
        record_ref=args.record,
    )
    return result.to_dict(), result.success


def _cmd_analyze(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    result = orchestrator.analyze_document(
        file_path=args.file,
        text=args.text,
        document_type=args.doc_type,
        context=args.context,
        record_ref=args.record,
    )
    return result.to_dict(), result.success


def _cmd_classify(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    result = orchestrator.classify_record(
        _read_json(args.data_file), context=args.context, record_ref=args.record
    )
    return result.to_dict(), result.success


def _cmd_fraud(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    result = orchestrator.detect_fraud(
        _read_json(args.data_file),
        _read_json(args.record_file),
        context=args.context,
        record_ref=args.record,
    )
    return result.to_dict(), result.success


def _cmd_validate(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    result = orchestrator.validate_data(
        _read_json(args.data_file),
        args.data_type,
        context=args.context,
        record_ref=args.record,
    )
    return result.to_dict(), result.success


def _cmd_batch(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    files = _find_documents(args.input_dir)
    if not files:
        logger.warning("No documents found in %s", args.input_dir)

    options: dict[str, Any] = {"document_type": args.doc_type}
    if args.language:
        options["language"] = args.language
    if args.context:
        options["context"] = args.context
    if args.data_type:
        options["data_type"] = args.data_type
    if args.record_data:
        options["record_data"] = _read_json(args.record_data)

    batch = orchestrator.batch_process(files, args.task, options)
    summary = batch.to_dict()
    _print_summary(summary)
    return summary, True


def _cmd_history(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    page = orchestrator.get_history(args.record_ref, args.limit, args.offset)
    return page.to_dict(), True


def _cmd_status(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    return orchestrator.status().to_dict(), True


def _cmd_health(
    orchestrator: PipelineOrchestrator, args: argparse.Namespace
) -> tuple[Any, bool]:
    health = orchestrator.health_check()
    return health.to_dict(), health.status == "healthy"


COMMANDS: dict[
    str, Callable[[PipelineOrchestrator, argparse.Namespace], tuple[Any, bool]]
] = {
    "recognize": _cmd_recognize,
    "form": _cmd_form,
    "analyze": _cmd_analyze,
    "classify": _cmd_classify,
    "fraud": _cmd_fraud,
    "validate": _cmd_validate,
    "batch": _cmd_batch,
    "history": _cmd_history,
    "status": _cmd_status,
    "health": _cmd_health,
}


def _add_common(parser: argparse.ArgumentParser, record: bool = True) -> None:
    parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    if record:
        parser.add_argument(
            "--record", help="Registry record reference to store the outcome under"
        )


def _add_context(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--context", type=_json_object, help="Extra context as a JSON object"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vitaldoc",
        description="Vital-event document recognition and analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="YAML configuration file (default: configs/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    rec = subparsers.add_parser("recognize", help="Extract text from a document")
    rec.add_argument("file", type=Path, help="Image or PDF to recognize")
    rec.add_argument("-l", "--language", help="Tesseract language (e.g. eng, amh)")
    rec.add_argument(
        "--region",
        type=int,
        nargs=4,
        action="append",
        metavar=("LEFT", "TOP", "WIDTH", "HEIGHT"),
        help="Recognize only this rectangle; repeat for several regions",
    )
    _add_common(rec)

    form = subparsers.add_parser("form", help="Extract certificate fields")
    form.add_argument("file", type=Path, help="Image or PDF of the form")
    form.add_argument(
        "-t", "--template", help="Template name (default: detect from the text)"
    )
    form.add_argument("-l", "--language", help="Tesseract language")
    _add_common(form)

    analyze = subparsers.add_parser("analyze", help="Analyze a document with the model")
    analyze.add_argument(
        "file", type=Path, nargs="?", help="Image, PDF or text file to analyze"
    )
    analyze.add_argument("--text", help="Analyze this text instead of a file")
    analyze.add_argument(
        "-t",
        "--type",
        default="general",
        dest="doc_type",
        help="Document type (default: general)",
    )
    _add_context(analyze)
    _add_common(analyze)

    classify = subparsers.add_parser("classify", help="Classify a vital-event record")
    classify.add_argument("data_file", type=Path, help="Document data as JSON")
    _add_context(classify)
    _add_common(classify)

    fraud = subparsers.add_parser("fraud", help="Check document data for fraud")
    fraud.add_argument("data_file", type=Path, help="Document data as JSON")
    fraud.add_argument("record_file", type=Path, help="Registry record data as JSON")
    _add_context(fraud)
    _add_common(fraud)

    validate = subparsers.add_parser("validate", help="Validate record data")
    validate.add_argument("data_file", type=Path, help="Record data as JSON")
    validate.add_argument(
        "-d", "--data-type", required=True, help="Kind of data (e.g. birth_record)"
    )
    _add_context(validate)
    _add_common(validate)

    batch = subparsers.add_parser("batch", help="Process a folder of documents")
    batch.add_argument("input_dir", type=Path, help="Input directory with documents")
    batch.add_argument(
        "-t",
        "--task",
        choices=[t.value for t in PipelineTask],
        default=PipelineTask.OCR.value,
        help="Task to run on every file (default: ocr)",
    )
    batch.add_argument(
        "--type",
        default="general",
        dest="doc_type",
        help="Document type for document_analysis (default: general)",
    )
    batch.add_argument("-l", "--language", help="Tesseract language")
    batch.add_argument("-d", "--data-type", help="Data type for validation")
    batch.add_argument(
        "--record-data", type=Path, help="Registry record JSON for fraud_detection"
    )
    _add_context(batch)
    _add_common(batch, record=False)

    history = subparsers.add_parser("history", help="Show analysis history")
    history.add_argument("record_ref", help="Registry record reference")
    history.add_argument("--limit", type=int, default=50, help="Page size")
    history.add_argument("--offset", type=int, default=0, help="Records to skip")
    _add_common(history, record=False)

    status = subparsers.add_parser("status", help="Show which features are enabled")
    _add_common(status, record=False)

    health = subparsers.add_parser("health", help="Probe the running engines")
    _add_common(health, record=False)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    for name in _FILE_ARGS:
        path = getattr(args, name, None)
        if path is not None and not path.exists():
            print(f"Error: {path} does not exist", file=sys.stderr)
            sys.exit(1)
    if args.command == "batch" and not args.input_dir.is_dir():
        print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
        sys.exit(1)

    orchestrator = build_orchestrator(args.config)
    try:
        payload, ok = COMMANDS[args.command](orchestrator, args)
    except VitalDocError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        orchestrator.close()

    _emit(payload, args.output)
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
