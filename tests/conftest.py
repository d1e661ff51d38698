from __future__ import annotations

import numpy as np
import pandas as pd
import pytest


@pytest.fixture()
def marker_table() -> pd.DataFrame:
    """Two well-separated treatment groups over three CD4/CD8 markers."""

    rng = np.random.default_rng(42)
    rows = 30
    control = pd.DataFrame(
        {
            "4_CD25": rng.normal(2.0, 0.3, rows),
            "4_CD69": rng.normal(1.0, 0.3, rows),
            "8_GzmB": rng.normal(3.0, 0.3, rows),
        }
    )
    treated = pd.DataFrame(
        {
            "4_CD25": rng.normal(8.0, 0.3, rows),
            "4_CD69": rng.normal(6.0, 0.3, rows),
            "8_GzmB": rng.normal(9.0, 0.3, rows),
        }
    )
    table = pd.concat([control, treated], ignore_index=True)
    table["Treatment"] = ["Control"] * rows + ["Treated"] * rows
    table["Sample"] = [f"S{idx:03d}" for idx in range(2 * rows)]
    return table
