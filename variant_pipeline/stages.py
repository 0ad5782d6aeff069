"""
Pipeline stages.

Each stage is a plain function taking the run configuration and workspace and
returning the artifacts it produced. External programs are invoked through
`commands.run_command` / `commands.run_shell_pipeline`; their stderr goes to
a per-stage log in the workspace so failures can be reported with context.

Stage order
-----------
1. align            bwa index/mem, samtools fixmate/sort/index
2. reference_index  samtools faidx + dict (only when realigning)
3. realign          GATK 3 RealignerTargetCreator + IndelRealigner
4. index_realigned  samtools index on the realigned BAM
5. call_variants    bcftools mpileup | bcftools call
6. decompress       gzip -dk on the compressed VCF (unless -z)
7. vcf_to_bed       optional BED-like tables
8. summarize        optional per-chromosome SNP/indel summary
"""

import logging
import shlex
import subprocess
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from variant_pipeline import bed, commands, summary
from variant_pipeline.config import PipelineConfig
from variant_pipeline.workspace import Workspace, bam_index

READ_GROUP = r"@RG\tID:foo\tSM:bar\tLB:library1"
TARGET_CREATOR_MEMORY = "-Xmx2g"
INDEL_REALIGNER_MEMORY = "-Xmx4g"
STDERR_TAIL_LINES = 20

StageFunc = Callable[[PipelineConfig, Workspace], List[Path]]


@dataclass(frozen=True)
class StageFailure:
    """Why a stage stopped the pipeline."""

    stage: str
    command: str = ""
    returncode: Optional[int] = None
    stderr_tail: str = ""
    error: str = ""

    def describe(self) -> str:
        """One-line summary, followed by the stderr tail when there is one."""
        if self.returncode is None:
            message = f"Stage '{self.stage}' failed: {self.error}"
        else:
            message = f"Stage '{self.stage}' failed (exit {self.returncode}): {self.command}"
        if self.stderr_tail:
            message += "\n" + self.stderr_tail
        return message


@dataclass
class StageResult:
    stage: str
    ok: bool
    skipped: bool = False
    outputs: List[Path] = field(default_factory=list)
    failure: Optional[StageFailure] = None


@dataclass(frozen=True)
class Stage:
    """A named pipeline step and the predicate deciding whether it runs."""

    name: str
    func: StageFunc
    enabled: Callable[[PipelineConfig], bool] = lambda config: True
    log_path: Optional[Callable[[Workspace], Path]] = None

    def stderr_path(self, workspace: Workspace) -> Path:
        if self.log_path is not None:
            return self.log_path(workspace)
        return workspace.stderr_log(self.name)


def read_tail(path: Path, lines: int = STDERR_TAIL_LINES) -> str:
    """Last `lines` lines of a log file, or an empty string when absent."""
    if not path.exists():
        return ""
    with path.open(errors="replace") as handle:
        return "".join(deque(handle, maxlen=lines)).rstrip()


def execute_stage(stage: Stage, config: PipelineConfig, workspace: Workspace) -> StageResult:
    """Run one stage and capture its outcome instead of raising.

    Tool exits, I/O errors and malformed input all become a StageFailure.
    """
    if not stage.enabled(config):
        logging.info("Skipping stage %s.", stage.name)
        return StageResult(stage=stage.name, ok=True, skipped=True)

    logging.info("Starting stage %s.", stage.name)
    try:
        outputs = stage.func(config, workspace)
    except subprocess.CalledProcessError as err:
        failure = StageFailure(
            stage=stage.name,
            command=commands.format_command(err.cmd),
            returncode=err.returncode,
            stderr_tail=read_tail(stage.stderr_path(workspace)),
        )
        logging.error("%s", failure.describe())
        return StageResult(stage=stage.name, ok=False, failure=failure)
    except (OSError, ValueError) as err:
        failure = StageFailure(stage=stage.name, error=f"{type(err).__name__}: {err}")
        logging.error("%s", failure.describe())
        return StageResult(stage=stage.name, ok=False, failure=failure)
    logging.info("Finished stage %s.", stage.name)
    return StageResult(stage=stage.name, ok=True, outputs=list(outputs))


def align(config: PipelineConfig, workspace: Workspace) -> List[Path]:
    """Index the reference, map both mates and produce a sorted, indexed BAM."""
    if config.reads1 is None or config.reads2 is None:
        raise ValueError("Both reads files are required for paired-end alignment.")
    tools = config.tools
    threads = str(config.threads)
    with workspace.stderr_log("align").open("w") as err:
        if all(path.exists() for path in config.bwa_index_files):
            logging.info("BWA index present for %s; reusing.", config.ref)
        else:
            logging.info("Building BWA index for %s", config.ref)
            commands.run_command([tools.bwa, "index", config.ref], stderr=err, verbose=config.verbose)

        with workspace.raw_sam.open("w") as sam:
            commands.run_command(
                [tools.bwa, "mem", "-t", threads, "-R", READ_GROUP, config.ref, config.reads1, config.reads2],
                stdout=sam,
                stderr=err,
                verbose=config.verbose,
            )
        commands.run_command(
            [tools.samtools, "fixmate", "-O", "bam", workspace.raw_sam, workspace.fixmate_bam],
            stderr=err,
            verbose=config.verbose,
        )
        commands.run_command(
            [
                tools.samtools,
                "sort",
                "-@",
                threads,
                "-O",
                "bam",
                "-o",
                workspace.sorted_bam,
                "-T",
                workspace.sort_temp_prefix,
                workspace.fixmate_bam,
            ],
            stderr=err,
            verbose=config.verbose,
        )
        commands.run_command([tools.samtools, "index", workspace.sorted_bam], stderr=err, verbose=config.verbose)
    return [workspace.raw_sam, workspace.fixmate_bam, workspace.sorted_bam, bam_index(workspace.sorted_bam)]


def reference_index(config: PipelineConfig, workspace: Workspace) -> List[Path]:
    """Create the .fai and .dict files GATK needs next to the reference."""
    tools = config.tools
    with workspace.stderr_log("reference_index").open("w") as err:
        if config.reference_fai.exists():
            logging.info("FASTA index %s present; reusing.", config.reference_fai)
        else:
            logging.info("Creating FASTA index with samtools faidx.")
            commands.run_command([tools.samtools, "faidx", config.ref], stderr=err, verbose=config.verbose)

        if config.reference_dict.exists():
            logging.info("Sequence dictionary %s present; reusing.", config.reference_dict)
        else:
            logging.info("Creating sequence dictionary with samtools dict.")
            commands.run_command(
                [tools.samtools, "dict", config.ref, "-o", config.reference_dict],
                stderr=err,
                verbose=config.verbose,
            )
    return [config.reference_fai, config.reference_dict]


def realign(config: PipelineConfig, workspace: Workspace) -> List[Path]:
    """Realign reads around known indels with GATK 3."""
    tools = config.tools
    gatk = [tools.java, TARGET_CREATOR_MEMORY, "-jar", tools.gatk_jar]
    with workspace.realign_log.open("a") as err:
        commands.run_command(
            gatk
            + [
                "-T",
                "RealignerTargetCreator",
                "-R",
                config.ref,
                "-I",
                workspace.sorted_bam,
                "-o",
                workspace.intervals,
                "--known",
                config.mills_file,
            ],
            stderr=err,
            verbose=config.verbose,
        )
        gatk[1] = INDEL_REALIGNER_MEMORY
        commands.run_command(
            gatk
            + [
                "-T",
                "IndelRealigner",
                "-R",
                config.ref,
                "-I",
                workspace.sorted_bam,
                "-targetIntervals",
                workspace.intervals,
                "-known",
                config.mills_file,
                "-o",
                workspace.realigned_bam,
            ],
            stderr=err,
            verbose=config.verbose,
        )
    return [workspace.intervals, workspace.realigned_bam]


def index_realigned(config: PipelineConfig, workspace: Workspace) -> List[Path]:
    """Build the .bai index for the realigned BAM."""
    with workspace.stderr_log("index_realigned").open("w") as err:
        commands.run_command(
            [config.tools.samtools, "index", workspace.realigned_bam],
            stderr=err,
            verbose=config.verbose,
        )
    return [bam_index(workspace.realigned_bam)]


def calling_input(config: PipelineConfig, workspace: Workspace) -> Path:
    """BAM handed to the caller, chosen by the realign flag alone."""
    return workspace.realigned_bam if config.realign else workspace.sorted_bam


def call_variants(config: PipelineConfig, workspace: Workspace) -> List[Path]:
    """Run bcftools mpileup/call and write the compressed VCF."""
    tools = config.tools
    bam_path = calling_input(config, workspace)
    logging.info("Calling variants from %s", bam_path.name)
    script = (
        f"{shlex.quote(tools.bcftools)} mpileup -Ou -f {shlex.quote(str(config.ref))} "
        f"{shlex.quote(str(bam_path))} "
        "| "
        f"{shlex.quote(tools.bcftools)} call -vmO z -o {shlex.quote(str(config.compressed_vcf))}"
    )
    with workspace.stderr_log("call_variants").open("w") as err:
        commands.run_shell_pipeline(script, stderr=err, verbose=config.verbose)
    return [config.compressed_vcf]


def decompress(config: PipelineConfig, workspace: Workspace) -> List[Path]:
    """Write an uncompressed copy of the VCF next to the compressed one."""
    with workspace.stderr_log("decompress").open("w") as err:
        commands.run_command(
            [config.tools.gzip, "-dkf", config.compressed_vcf],
            stderr=err,
            verbose=config.verbose,
        )
    return [config.vcf]


def final_vcf(config: PipelineConfig) -> Path:
    """The VCF downstream steps read: uncompressed unless -z was given."""
    return config.compressed_vcf if config.gunzip else config.vcf


def vcf_to_bed(config: PipelineConfig, workspace: Workspace) -> List[Path]:
    """Write the BED-like table and its SNP/indel split for the final VCF."""
    outputs = bed.vcf_to_bed(final_vcf(config), config.output)
    return [outputs.table, outputs.snps, outputs.indels]


def summarize(config: PipelineConfig, workspace: Workspace) -> List[Path]:
    """Write the per-chromosome variant summary table and plot."""
    table = bed.bed_table(bed.read_variant_table(final_vcf(config)))
    return list(summary.write_summary(table, config.output))


PIPELINE_STAGES = [
    Stage("align", align),
    Stage("reference_index", reference_index, enabled=lambda config: config.realign),
    Stage(
        "realign",
        realign,
        enabled=lambda config: config.realign,
        log_path=lambda workspace: workspace.realign_log,
    ),
    Stage("index_realigned", index_realigned, enabled=lambda config: config.index and config.realign),
    Stage("call_variants", call_variants),
    Stage("decompress", decompress, enabled=lambda config: not config.gunzip),
    Stage("vcf_to_bed", vcf_to_bed, enabled=lambda config: config.bed),
    Stage("summarize", summarize, enabled=lambda config: config.summary),
]
