import numpy as np
import pandas as pd
from pathlib import Path


def build_demo_table(rows_per_sample: int = 60, seed: int = 42) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    frames = []
    for sample_idx, treatment in enumerate(["Control", "Control", "Treated", "Treated"]):
        shift = 1.5 if treatment == "Treated" else 0.0
        frames.append(
            pd.DataFrame(
                {
                    "Sample": f"S{sample_idx + 1}",
                    "Treatment": treatment,
                    "4_CD25": rng.normal(12 + shift, 2.0, rows_per_sample),
                    "4_CD69": rng.normal(8 + shift * 2, 1.5, rows_per_sample),
                    "8_CD25": rng.normal(10, 2.5, rows_per_sample),
                    "8_GzmB": rng.normal(20 + shift * 3, 4.0, rows_per_sample),
                }
            )
        )
    table = pd.concat(frames, ignore_index=True)
    # A few gaps and an unparsable entry, as exported gating tables often have.
    missing_rows = rng.choice(table.shape[0], size=5, replace=False)
    table.loc[missing_rows, "8_CD25"] = np.nan
    table["4_CD69"] = table["4_CD69"].astype(object)
    table.loc[(int(missing_rows[0]) + 1) % table.shape[0], "4_CD69"] = "n/a"
    return table


def main() -> None:
    output_dir = Path(__file__).parent
    output_dir.mkdir(parents=True, exist_ok=True)
    build_demo_table().to_csv(output_dir / "demo_markers.csv", index=False)


if __name__ == "__main__":
    main()
