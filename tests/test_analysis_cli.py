from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import numpy as np
import pandas as pd

ROOT = Path(__file__).resolve().parents[1]


def _run_cli(args: list[str], *, check: bool = True) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "analysis_cli", *args],
        cwd=ROOT,
        check=check,
        capture_output=True,
        text=True,
    )


def _make_dataset(path: Path) -> Path:
    rng = np.random.default_rng(0)
    df = pd.DataFrame(
        {
            "4_CD25": np.concatenate([rng.normal(1.0, 0.2, 12), rng.normal(3.0, 0.2, 12)]),
            "8_GzmB": np.concatenate([rng.normal(5.0, 0.2, 12), rng.normal(9.0, 0.2, 12)]),
            "CD3": rng.normal(size=24),
            "Treatment": ["Control"] * 12 + ["Treated"] * 12,
            "Sample": [f"S{idx}" for idx in range(24)],
        }
    )
    csv_path = path / "markers.csv"
    df.to_csv(csv_path, index=False)
    return csv_path


def test_cli_run_writes_outputs(tmp_path: Path) -> None:
    csv_path = _make_dataset(tmp_path)
    output_dir = tmp_path / "run"

    result = json.loads(
        _run_cli(
            [
                "run",
                "--input",
                str(csv_path),
                "--treatment",
                "Treatment",
                "--method",
                "PCA",
                "--clusters",
                "2",
                "--output-dir",
                str(output_dir),
                "--view",
                "fold_change",
                "--view",
                "cluster_heatmap",
                "--bundle",
                "--log-dir",
                str(tmp_path / "logs"),
            ]
        ).stdout
    )

    assert result["status"] == "ok"
    assert result["rows"] == 24
    assert result["effective_clusters"] == 2
    assert result["view_errors"] == {}

    projection = pd.read_csv(output_dir / "projection.csv")
    assert list(projection.columns) == ["Dim1", "Dim2", "Treatment", "Cluster", "Sample"]
    fold_change = pd.read_csv(output_dir / "fold_change.csv")
    assert fold_change["Marker"].tolist() == ["4_CD25", "8_GzmB"]
    assert (output_dir / "analysis.joblib").exists()
    assert (tmp_path / "logs" / "analysis.log").exists()

    metadata = json.loads((output_dir / "metadata.json").read_text())
    assert metadata["markers"] == ["4_CD25", "8_GzmB"]
    assert metadata["method_label"] == "Principal Component Analysis"


def test_cli_run_reports_failures(tmp_path: Path) -> None:
    csv_path = _make_dataset(tmp_path)

    completed = _run_cli(
        [
            "run",
            "--input",
            str(csv_path),
            "--markers",
            "4_CD25",
            "CD19",
            "--treatment",
            "Treatment",
            "--output-dir",
            str(tmp_path / "run"),
        ],
        check=False,
    )

    assert completed.returncode == 1
    payload = json.loads(completed.stdout)
    assert payload["status"] == "failed"
    assert payload["error"]["kind"] == "column_not_found"


def test_cli_inspect_and_list_methods(tmp_path: Path) -> None:
    csv_path = _make_dataset(tmp_path)

    inventory = json.loads(_run_cli(["inspect", "--input", str(csv_path)]).stdout)
    assert inventory["markers"] == ["4_CD25", "8_GzmB"]
    assert inventory["treatment_candidates"] == ["Treatment", "Sample"]
    assert inventory["rows"] == 24

    methods = json.loads(_run_cli(["list-methods"]).stdout)
    names = [entry["name"] for entry in methods["methods"]]
    assert names == ["t-SNE", "UMAP", "PCA", "MDS"]
    assert methods["methods"][0]["params"] == {"perplexity": 5}
