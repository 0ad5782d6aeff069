#!/usr/bin/env python3
"""
Command-line entry points.

variant-pipeline
    Align a pair of read files to a reference, optionally realign around
    known indels, call variants and write `<output>.vcf.gz` (plus `<output>.vcf`
    unless -z is given).

variant-pipeline-bed
    Convert an existing VCF into the BED-like table and SNP/indel split.

Usage
-----
    variant-pipeline -a reads_1.fq -b reads_2.fq -r ref.fa -o sample
    variant-pipeline -a reads_1.fq -b reads_2.fq -r ref.fa -o sample \
        -e -f Mills_and_1000G_gold_standard.indels.vcf.gz -i -v
    variant-pipeline-bed sample.vcf --prefix sample

Prerequisites
-------------
bwa, samtools, bcftools and gzip on PATH; for realignment java 1.8 and the
GATK 3.x jar (GenomeAnalysisTK.jar, see --gatk-jar) plus a known indels VCF
such as Mills_and_1000G_gold_standard.indels.hg38.vcf.gz.
"""

import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional

from variant_pipeline import bed, commands, summary
from variant_pipeline.config import ConfigError, PipelineConfig
from variant_pipeline.pipeline import (
    PreflightError,
    UserAbort,
    assemble_metadata,
    preflight,
    run_pipeline,
)
from variant_pipeline.workspace import Workspace


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="variant-pipeline",
        description=(
            "Align paired-end reads with bwa, optionally realign around known indels "
            "with GATK 3, and call variants with bcftools."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-a", dest="reads1", type=Path, help="Input reads file - pair 1.")
    parser.add_argument("-b", dest="reads2", type=Path, help="Input reads file - pair 2.")
    parser.add_argument("-r", dest="ref", type=Path, help="Reference genome file (FASTA).")
    parser.add_argument("-e", dest="realign", action="store_true", help="Perform read re-alignment.")
    parser.add_argument("-o", dest="output", help="Output VCF file name, without extension.")
    parser.add_argument("-f", dest="mills_file", type=Path, help="Mills (known indels) file location.")
    parser.add_argument(
        "-z",
        dest="gunzip",
        action="store_true",
        help="Keep only the gzipped output VCF (*.vcf.gz).",
    )
    parser.add_argument(
        "-v",
        dest="verbose",
        action="store_true",
        help="Verbose mode; print each command before running it.",
    )
    parser.add_argument(
        "-i",
        dest="index",
        action="store_true",
        help="Index the realigned BAM file (samtools index); requires -e.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing output VCF without asking.",
    )
    parser.add_argument(
        "--work-dir",
        type=Path,
        default=None,
        help="Directory for intermediate files (default: a fresh per-run directory next to the output).",
    )
    parser.add_argument(
        "--bed",
        action="store_true",
        help="Also write <output>.bed.txt, <output>_snps.txt and <output>_indels.txt.",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Also write a per-chromosome SNP/indel summary table and plot.",
    )
    parser.add_argument(
        "--threads",
        type=int,
        default=1,
        help="Threads for bwa mem and samtools sort (default: 1).",
    )
    parser.add_argument("--gatk-jar", default=None, help="Path to GenomeAnalysisTK.jar (GATK 3.x).")
    parser.add_argument("--java", default=None, help="Java executable used to run GATK.")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    return build_parser().parse_args(argv)


def check_tools(config: PipelineConfig) -> None:
    """Ensure executables (and the GATK jar when realigning) are available."""
    commands.check_dependencies(config.required_executables())
    if config.realign and not Path(config.tools.gatk_jar).is_file():
        raise RuntimeError(f"GATK jar not found: {config.tools.gatk_jar}. Use --gatk-jar.")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    commands.configure_logging(args.verbose)
    config = PipelineConfig.from_args(args)

    try:
        config.validate()
        preflight(config)
        check_tools(config)
    except UserAbort as exc:
        logging.info("%s", exc)
        return 0
    except (ConfigError, PreflightError, RuntimeError) as exc:
        logging.error("%s", exc)
        return 1

    output_path = Path(config.output)
    workspace = Workspace.create(output_path.parent, output_path.name, config.work_dir)
    handler = commands.add_log_file(workspace.pipeline_log)
    script_start = time.time()
    logging.info("Intermediate files in %s", workspace.root)

    try:
        outcome = run_pipeline(config, workspace)
        assemble_metadata(script_start, config, outcome, workspace.metadata)
    except Exception as exc:  # pylint: disable=broad-except
        logging.exception("Pipeline failed: %s", exc)
        raise
    finally:
        logging.getLogger().removeHandler(handler)
        handler.close()

    if not outcome.ok:
        logging.error("Pipeline failed: %s", outcome.failure.describe())
        return 1
    logging.info("Pipeline complete. Variants written to %s", config.compressed_vcf)
    return 0


def default_prefix(vcf_path: Path) -> str:
    """`sample.vcf.gz` -> `sample`, `sample.vcf` -> `sample`."""
    name = vcf_path.name
    for suffix in (".gz", ".vcf"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    return str(vcf_path.with_name(name))


def bed_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="variant-pipeline-bed",
        description="Convert a VCF into a chrom/start/end/delta table split into SNPs and indels.",
    )
    parser.add_argument("vcf", type=Path, help="Input VCF (plain or .gz).")
    parser.add_argument(
        "--prefix",
        default=None,
        help="Output prefix (default: the VCF path without .vcf/.vcf.gz).",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Also write the per-chromosome summary table and plot.",
    )
    args = parser.parse_args(argv)
    commands.configure_logging()

    prefix = args.prefix or default_prefix(args.vcf)
    try:
        outputs = bed.vcf_to_bed(args.vcf, prefix)
        if args.summary:
            table = bed.bed_table(bed.read_variant_table(args.vcf))
            summary.write_summary(table, prefix)
    except (FileNotFoundError, ValueError) as exc:
        logging.error("%s", exc)
        return 1
    logging.info("BED table written to %s", outputs.table)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
