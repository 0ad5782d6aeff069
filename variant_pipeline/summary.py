"""
Per-chromosome variant summary built from the BED-like table.

Produces `<prefix>_summary.tsv` (SNP, insertion, deletion counts and mean
indel length per chromosome) and a stacked bar plot `<prefix>_summary.png`.
"""

import logging
from pathlib import Path
from typing import Tuple

import numpy as np
import pandas as pd

SUMMARY_COLUMNS = ["chrom", "snps", "insertions", "deletions", "indels", "mean_indel_length"]


def summarise_variants(table: pd.DataFrame) -> pd.DataFrame:
    """Count SNPs and indels per chromosome from chrom/start/end/delta rows."""
    if table.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    delta = table["delta"].astype("int64")
    df = pd.DataFrame(
        {
            "chrom": table["chrom"].astype(str),
            "snp": (delta == 0).astype(int),
            "insertion": (delta > 0).astype(int),
            "deletion": (delta < 0).astype(int),
            "indel_length": np.where(delta != 0, np.abs(delta), np.nan),
        }
    )
    summary = (
        df.groupby("chrom", sort=True)
        .agg(
            snps=("snp", "sum"),
            insertions=("insertion", "sum"),
            deletions=("deletion", "sum"),
            mean_indel_length=("indel_length", "mean"),
        )
        .reset_index()
    )
    summary["indels"] = summary["insertions"] + summary["deletions"]
    summary["mean_indel_length"] = summary["mean_indel_length"].fillna(0.0)
    return summary[SUMMARY_COLUMNS]


def plot_variant_counts(summary: pd.DataFrame, figure_path: Path) -> Path:
    """Generate a stacked bar plot of SNP and indel counts per chromosome."""
    figure_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError as err:
        raise ImportError("matplotlib is required for visualization.") from err

    fig, ax = plt.subplots(figsize=(10, 6))
    positions = np.arange(len(summary))
    ax.bar(positions, summary["snps"], color="#2878B5", label="SNPs")
    ax.bar(positions, summary["indels"], bottom=summary["snps"], color="#C82423", label="Indels")
    ax.set_xticks(positions)
    ax.set_xticklabels(summary["chrom"], rotation=45, ha="right")
    ax.set_ylabel("Variant count")
    ax.set_title("Variants per chromosome")
    ax.legend(loc="best", frameon=False)
    fig.tight_layout()
    fig.savefig(figure_path, dpi=150)
    plt.close(fig)
    return figure_path


def write_summary(table: pd.DataFrame, prefix: str) -> Tuple[Path, Path]:
    """Write the summary TSV and figure for `prefix`."""
    summary = summarise_variants(table)
    table_path = Path(f"{prefix}_summary.tsv")
    table_path.parent.mkdir(parents=True, exist_ok=True)
    summary.to_csv(table_path, sep="\t", index=False)
    figure_path = plot_variant_counts(summary, Path(f"{prefix}_summary.png"))
    logging.info("Variant summary written to %s and %s", table_path, figure_path)
    return table_path, figure_path
