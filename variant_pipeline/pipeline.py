"""
Pipeline driver: pre-flight checks, stage sequencing and the run record.

The driver never inspects the filesystem to decide which stage runs or which
BAM is called; those choices come from the boolean configuration only.
Execution stops at the first stage whose external command exits non-zero.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from variant_pipeline.config import PipelineConfig
from variant_pipeline.stages import PIPELINE_STAGES, StageFailure, StageResult, execute_stage
from variant_pipeline.workspace import Workspace

ABORT_ANSWER = "y"
OVERWRITE_PROMPT = (
    "Output VCF file already exists. Enter y to exit the program. "
    "To overwrite the existing file please enter anything except y.\n"
)


class PreflightError(FileNotFoundError):
    """A mandatory input file is missing."""


class UserAbort(Exception):
    """The operator declined to overwrite an existing output."""


@dataclass
class PipelineResult:
    workspace: Workspace
    results: List[StageResult] = field(default_factory=list)

    @property
    def failure(self) -> Optional[StageFailure]:
        for result in self.results:
            if result.failure is not None:
                return result.failure
        return None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def outputs(self) -> List[Path]:
        return [path for result in self.results for path in result.outputs]


def _is_file(path: Optional[Path]) -> bool:
    return path is not None and path.is_file()


def existing_outputs(config: PipelineConfig) -> List[Path]:
    return [path for path in (config.vcf, config.compressed_vcf) if path.exists()]


def preflight(config: PipelineConfig, prompt: Optional[Callable[[str], str]] = None) -> None:
    """Check inputs and confirm overwrites before any tool runs.

    Raises PreflightError for a missing pair-1 reads file or reference, and
    UserAbort when the operator answers ``y`` to the overwrite question. A
    missing pair-2 file is only warned about.
    """
    if not _is_file(config.reads1):
        raise PreflightError(f"1st reads file is missing: {config.reads1}")
    if not _is_file(config.reads2):
        logging.warning("2nd reads file is missing: %s", config.reads2)
    if not _is_file(config.ref):
        raise PreflightError(f"Reference genome file is missing: {config.ref}")

    existing = existing_outputs(config)
    if existing and not config.force:
        try:
            answer = (prompt or input)(OVERWRITE_PROMPT).strip()
        except EOFError:
            answer = ""
        if answer == ABORT_ANSWER:
            raise UserAbort("Exiting without overwriting " + ", ".join(str(path) for path in existing))
        logging.info("Continuing; existing output will be overwritten.")


def run_pipeline(config: PipelineConfig, workspace: Workspace) -> PipelineResult:
    """Execute every enabled stage in order, stopping at the first failure.

    Disabled stages are still recorded, as skipped results.
    """
    outcome = PipelineResult(workspace=workspace)
    for stage in PIPELINE_STAGES:
        result = execute_stage(stage, config, workspace)
        outcome.results.append(result)
        if not result.ok:
            logging.error("Pipeline halted at stage %s.", stage.name)
            break
    return outcome


def assemble_metadata(
    script_start: float,
    config: PipelineConfig,
    outcome: PipelineResult,
    metadata_path: Path,
) -> None:
    """Write metadata.json capturing run context."""
    stages: Dict[str, str] = {}
    for result in outcome.results:
        if result.skipped:
            stages[result.stage] = "skipped"
        else:
            stages[result.stage] = "ok" if result.ok else "failed"

    failure = outcome.failure
    metadata = {
        "date": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "runtime_seconds": time.time() - script_start,
        "parameters": config.as_params(),
        "workspace": str(outcome.workspace.root),
        "stages": stages,
        "outputs": [str(path) for path in outcome.outputs],
        "failure": None
        if failure is None
        else {
            "stage": failure.stage,
            "command": failure.command,
            "returncode": failure.returncode,
            "error": failure.error,
        },
    }
    metadata_path.write_text(json.dumps(metadata, indent=2))
