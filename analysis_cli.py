"""Command-line interface for headless marker analysis runs."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import joblib
import pandas as pd

from analysis_config import AnalysisConfig
from analysis_pipeline import AnalysisRequest, run_analysis
from comparison_views import ComparisonView, build_view, format_method_name
from error_handling import AnalysisError, AnalysisFailure
from feature_selection import describe_columns, detect_marker_columns
from logging_config import configure_logging, get_logger
from reductions import EMBEDDERS, EmbeddingMethod, params_from_mapping

LOGGER = get_logger("cli")

_READERS = {
    ".csv": lambda path: pd.read_csv(path),
    ".tsv": lambda path: pd.read_csv(path, sep="\t"),
    ".txt": lambda path: pd.read_csv(path, sep="\t"),
    ".xlsx": lambda path: pd.read_excel(path),
    ".xls": lambda path: pd.read_excel(path),
}


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _load_table(path: Path) -> pd.DataFrame:
    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        raise ValueError(f"Unsupported file format '{path.suffix}'; use CSV, TSV or Excel.")
    return reader(path)


def _method_params(args: argparse.Namespace) -> Dict[str, object]:
    return {
        "perplexity": args.perplexity,
        "n_neighbors": args.n_neighbors,
        "min_dist": args.min_dist,
        "n_components": args.pca_components,
    }


def _write_frame(frame: pd.DataFrame, path: Path) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False)
    return str(path)


def _failure_payload(failure: AnalysisFailure) -> Dict[str, object]:
    return {"status": "failed", "error": asdict(failure)}


def run_pipeline(args: argparse.Namespace) -> Dict[str, object]:
    config = AnalysisConfig.from_env()
    table = _load_table(Path(args.input))
    markers = args.markers or detect_marker_columns(table, config.marker_pattern)
    method = EmbeddingMethod.parse(args.method)
    request = AnalysisRequest(
        markers=tuple(markers),
        treatment_column=args.treatment,
        method=method,
        method_params=params_from_mapping(method, _method_params(args)),
        cluster_count=args.clusters,
        random_state=args.random_state if args.random_state is not None else config.random_state,
        sample_column=config.sample_column,
        kmeans_restarts=config.kmeans_restarts,
    )

    outcome = run_analysis(table, request)
    if isinstance(outcome, AnalysisFailure):
        return _failure_payload(outcome)

    output_dir = Path(args.output_dir)
    outputs = {
        "projection": _write_frame(outcome.projection, output_dir / "projection.csv"),
        "summary": _write_frame(outcome.summary, output_dir / "summary.csv"),
    }
    view_errors: Dict[str, Dict[str, object]] = {}
    for view_name in args.view or []:
        view = ComparisonView(view_name)
        try:
            spec = build_view(outcome, view)
        except AnalysisError as exc:
            LOGGER.warning("View '%s' skipped: %s", view.value, exc.message)
            view_errors[view.value] = asdict(AnalysisFailure.from_error(exc))
            continue
        outputs[view.value] = _write_frame(spec.data, output_dir / f"{view.value}.csv")

    metadata = outcome.to_metadata()
    metadata["timestamp"] = datetime.now(timezone.utc).isoformat()
    metadata["method_label"] = format_method_name(outcome.method)
    metadata_path = output_dir / "metadata.json"
    with metadata_path.open("w", encoding="utf-8") as handle:
        json.dump(metadata, handle, indent=2, default=str)
    outputs["metadata"] = str(metadata_path)

    if args.bundle:
        bundle_path = output_dir / "analysis.joblib"
        joblib.dump({"result": outcome, "metadata": metadata}, bundle_path)
        outputs["bundle"] = str(bundle_path)

    return {
        "status": "ok",
        "rows": outcome.n_rows,
        "method": outcome.method.value,
        "embedding_params": outcome.embedding.effective_params,
        "effective_clusters": outcome.clusters.effective_k,
        "outputs": outputs,
        "view_errors": view_errors,
    }


def run_inspect(args: argparse.Namespace) -> Dict[str, object]:
    config = AnalysisConfig.from_env()
    table = _load_table(Path(args.input))
    inventory = describe_columns(table, config.marker_pattern)
    inventory["rows"] = int(table.shape[0])
    return inventory


def list_methods() -> Dict[str, object]:
    methods: List[Dict[str, object]] = []
    for method, embedder in EMBEDDERS.items():
        methods.append(
            {
                "name": method.value,
                "label": format_method_name(method),
                "params": asdict(embedder.params_type()),
            }
        )
    return {"methods": methods}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Flow cytometry analysis CLI")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--log-dir", type=Path, dest="log_dir", help="Also write a rotating analysis.log here."
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Embed, cluster and summarise a table.")
    run_parser.add_argument("--input", required=True, help="CSV, TSV or Excel file to load.")
    run_parser.add_argument(
        "--markers",
        nargs="*",
        help="Marker columns in order (defaults to columns matching the marker pattern).",
    )
    run_parser.add_argument("--treatment", required=True, help="Treatment column name.")
    run_parser.add_argument(
        "--method",
        default=EmbeddingMethod.TSNE.value,
        choices=[method.value for method in EmbeddingMethod],
    )
    run_parser.add_argument("--perplexity", type=int, help="t-SNE perplexity.")
    run_parser.add_argument("--n-neighbors", type=int, dest="n_neighbors", help="UMAP n_neighbors.")
    run_parser.add_argument("--min-dist", type=float, dest="min_dist", help="UMAP min_dist.")
    run_parser.add_argument(
        "--pca-components", type=int, dest="pca_components", help="Number of PCA components."
    )
    run_parser.add_argument("--clusters", type=int, default=3, help="Requested k-means cluster count.")
    run_parser.add_argument("--random-state", type=int, dest="random_state")
    run_parser.add_argument("--output-dir", type=Path, default=Path("analysis_runs"))
    run_parser.add_argument(
        "--view",
        action="append",
        choices=[view.value for view in ComparisonView],
        help="Comparison view data to export (can be repeated).",
    )
    run_parser.add_argument("--bundle", action="store_true", help="Also write a joblib result bundle.")

    inspect_parser = subparsers.add_parser("inspect", help="List columns and marker candidates.")
    inspect_parser.add_argument("--input", required=True, help="CSV, TSV or Excel file to load.")

    subparsers.add_parser("list-methods", help="List reduction methods and their parameters.")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    if args.log_dir is not None:
        _, log_path = configure_logging(
            args.log_dir, level=logging.DEBUG if args.verbose else logging.INFO
        )
        LOGGER.debug("Writing analysis log to %s", log_path)

    try:
        if args.command == "run":
            result = run_pipeline(args)
        elif args.command == "inspect":
            result = run_inspect(args)
        elif args.command == "list-methods":
            result = list_methods()
        else:  # pragma: no cover - subparsers are required
            parser.error("Unknown command")
            return 2
    except (AnalysisError, OSError, ValueError) as exc:
        LOGGER.error("%s", exc)
        if args.verbose:
            raise
        return 1

    json.dump(result, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    sys.stdout.flush()
    return 1 if result.get("status") == "failed" else 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
