"""
Convert a VCF into a four-column positional table and split it by variant type.

For every record the table holds the chromosome without its ``chr`` prefix,
the position, the end position ``POS + len(ALT) - len(REF)`` and the signed
length delta ``len(ALT) - len(REF)``. Rows with a delta of exactly zero are
substitutions (SNPs); all others are indels. Lengths are taken over the raw
REF/ALT fields, so a multi-allelic ALT such as ``G,T`` counts as length 3.

Usage
-----
    variant-pipeline-bed sample.vcf --prefix sample
"""

import gzip
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO, Tuple

import pandas as pd

VCF_COLUMNS = ["chrom", "pos", "id", "ref", "alt"]
BED_COLUMNS = ["chrom", "start", "end", "delta"]


@dataclass(frozen=True)
class BedOutputs:
    table: Path
    snps: Path
    indels: Path


def output_paths(prefix: str) -> BedOutputs:
    return BedOutputs(
        table=Path(f"{prefix}.bed.txt"),
        snps=Path(f"{prefix}_snps.txt"),
        indels=Path(f"{prefix}_indels.txt"),
    )


def _open_vcf(vcf_path: Path) -> TextIO:
    if vcf_path.suffix == ".gz":
        return gzip.open(vcf_path, "rt")
    return vcf_path.open()


def read_variant_table(vcf_path: Path) -> pd.DataFrame:
    """Load the first five whitespace-separated fields of every non-header line."""
    if not vcf_path.exists():
        raise FileNotFoundError(f"VCF not found: {vcf_path}")
    records = []
    with _open_vcf(vcf_path) as handle:
        for line_number, line in enumerate(handle, start=1):
            if line.startswith("#") or not line.strip():
                continue
            fields = line.split()
            if len(fields) < len(VCF_COLUMNS):
                raise ValueError(
                    f"{vcf_path}:{line_number}: expected at least {len(VCF_COLUMNS)} columns, got {len(fields)}"
                )
            records.append(fields[: len(VCF_COLUMNS)])
    df = pd.DataFrame.from_records(records, columns=VCF_COLUMNS)
    logging.debug("Read %d variant records from %s", len(df), vcf_path)
    return df


def strip_chr_prefix(chrom: str) -> str:
    return chrom[3:] if chrom.startswith("chr") else chrom


def bed_table(variants: pd.DataFrame) -> pd.DataFrame:
    """Build the chrom/start/end/delta table from VCF records."""
    if variants.empty:
        return pd.DataFrame(columns=BED_COLUMNS)
    delta = variants["alt"].str.len() - variants["ref"].str.len()
    start = variants["pos"].astype("int64")
    return pd.DataFrame(
        {
            "chrom": variants["chrom"].map(strip_chr_prefix),
            "start": start,
            "end": start + delta,
            "delta": delta.astype("int64"),
        }
    )


def split_by_delta(table: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Return (snps, indels): rows whose delta is zero, and all the rest."""
    is_snp = table["delta"] == 0
    return table[is_snp], table[~is_snp]


def write_rows(df: pd.DataFrame, path: Path) -> None:
    """Write rows tab-separated without header or index."""
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep="\t", header=False, index=False)


def vcf_to_bed(vcf_path: Path, prefix: str) -> BedOutputs:
    """Write `<prefix>.bed.txt`, `<prefix>_snps.txt` and `<prefix>_indels.txt`."""
    outputs = output_paths(prefix)
    table = bed_table(read_variant_table(Path(vcf_path)))
    snps, indels = split_by_delta(table)
    write_rows(table, outputs.table)
    write_rows(snps, outputs.snps)
    write_rows(indels, outputs.indels)
    logging.info(
        "Wrote %d records (%d SNPs, %d indels) to %s",
        len(table),
        len(snps),
        len(indels),
        outputs.table,
    )
    return outputs
