"""
Run configuration for the variant calling pipeline.

The command line is parsed once into an immutable `PipelineConfig` which is
handed to the driver; nothing downstream reads `argparse.Namespace` or global
flags. Tool locations default to the names expected on `PATH` and can be
overridden per run (`--gatk-jar`, `--java`) or per environment
(`VARIANT_PIPELINE_<TOOL>`).
"""

import argparse
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Mapping, Optional

ENV_PREFIX = "VARIANT_PIPELINE_"
DEFAULT_GATK_JAR = "GenomeAnalysisTK.jar"


class ConfigError(ValueError):
    """Raised when flag combinations cannot produce a valid run."""


@dataclass(frozen=True)
class ToolPaths:
    """Executables invoked by the stages."""

    bwa: str = "bwa"
    samtools: str = "samtools"
    bcftools: str = "bcftools"
    java: str = "java"
    gzip: str = "gzip"
    gatk_jar: str = DEFAULT_GATK_JAR

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[Dict[str, Optional[str]]] = None,
    ) -> "ToolPaths":
        """Resolve tool paths from VARIANT_PIPELINE_* variables, then explicit overrides."""
        environ = os.environ if environ is None else environ
        values: Dict[str, str] = {}
        for tool in fields(cls):
            name = tool.name
            env_value = environ.get(ENV_PREFIX + name.upper())
            if env_value:
                values[name] = env_value
        for name, value in (overrides or {}).items():
            if value:
                values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class PipelineConfig:
    """Everything a single pipeline run needs, fixed at start-up."""

    reads1: Optional[Path]
    reads2: Optional[Path]
    ref: Optional[Path]
    output: Optional[str]
    mills_file: Optional[Path] = None
    realign: bool = False
    gunzip: bool = False
    index: bool = False
    verbose: bool = False
    force: bool = False
    bed: bool = False
    summary: bool = False
    threads: int = 1
    work_dir: Optional[Path] = None
    tools: ToolPaths = field(default_factory=ToolPaths)

    @classmethod
    def from_args(
        cls,
        args: argparse.Namespace,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "PipelineConfig":
        """Build the configuration from parsed command-line arguments."""
        tools = ToolPaths.from_env(
            environ,
            overrides={"gatk_jar": args.gatk_jar, "java": args.java},
        )
        return cls(
            reads1=args.reads1,
            reads2=args.reads2,
            ref=args.ref,
            output=args.output,
            mills_file=args.mills_file,
            realign=bool(args.realign),
            gunzip=bool(args.gunzip),
            index=bool(args.index),
            verbose=bool(args.verbose),
            force=bool(args.force),
            bed=bool(args.bed),
            summary=bool(args.summary),
            threads=args.threads,
            work_dir=args.work_dir,
            tools=tools,
        )

    @property
    def compressed_vcf(self) -> Path:
        return Path(f"{self.output}.vcf.gz")

    @property
    def vcf(self) -> Path:
        return Path(f"{self.output}.vcf")

    @property
    def reference_dict(self) -> Path:
        """Sequence dictionary path: the reference with its extension replaced by .dict."""
        return self.ref.with_suffix(".dict")

    @property
    def reference_fai(self) -> Path:
        return self.ref.with_name(self.ref.name + ".fai")

    @property
    def bwa_index_files(self) -> List[Path]:
        """Files `bwa index` writes next to the reference."""
        return [self.ref.with_name(self.ref.name + ext) for ext in [".amb", ".ann", ".bwt", ".pac", ".sa"]]

    def validate(self) -> None:
        """Reject flag combinations that would reference artifacts never produced."""
        if not self.output:
            raise ConfigError("Output VCF base name is missing (-o).")
        if self.reads2 is None:
            raise ConfigError("2nd reads file argument is missing (-b); paired-end alignment needs both mates.")
        if self.index and not self.realign:
            raise ConfigError(
                "Indexing the realigned BAM (-i) requires realignment (-e); "
                "without -e no realigned BAM is produced."
            )
        if self.realign and self.mills_file is None:
            raise ConfigError("Realignment (-e) requires a known indels file (-f).")
        if self.threads < 1:
            raise ConfigError(f"--threads must be at least 1 (got {self.threads}).")

    def required_executables(self) -> List[str]:
        """Executables that must be on PATH for this run."""
        executables = [self.tools.bwa, self.tools.samtools, self.tools.bcftools]
        if self.realign:
            executables.append(self.tools.java)
        if not self.gunzip:
            executables.append(self.tools.gzip)
        return executables

    def as_params(self) -> Dict[str, object]:
        """JSON-friendly view of the run parameters."""
        return {
            "reads1": str(self.reads1) if self.reads1 else None,
            "reads2": str(self.reads2) if self.reads2 else None,
            "ref": str(self.ref) if self.ref else None,
            "output": self.output,
            "mills_file": str(self.mills_file) if self.mills_file else None,
            "realign": self.realign,
            "gunzip": self.gunzip,
            "index": self.index,
            "verbose": self.verbose,
            "force": self.force,
            "bed": self.bed,
            "summary": self.summary,
            "threads": self.threads,
            "tools": asdict(self.tools),
        }
