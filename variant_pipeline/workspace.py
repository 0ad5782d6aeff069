"""
Per-run working directory holding every intermediate artifact.

Artifact names inside a workspace are fixed (`lane.sam`, `lane_sorted.bam`,
...), but each run gets its own directory, so two runs started from the same
directory never overwrite each other's intermediates.
"""

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class Workspace:
    """Typed handles to the intermediate files of one pipeline run."""

    root: Path

    @classmethod
    def create(cls, base_dir: Path, run_name: str, work_dir: Optional[Path] = None) -> "Workspace":
        """Create the run directory.

        An explicit `work_dir` is used as-is (and may be reused across runs);
        otherwise a fresh `<base_dir>/<run_name>_<timestamp>_<pid>` is made.
        """
        if work_dir is not None:
            root = work_dir
        else:
            stamp = time.strftime("%Y%m%dT%H%M%S", time.localtime())
            root = base_dir / f"{Path(run_name).name}_{stamp}_{os.getpid()}"
        workspace = cls(root=root)
        workspace.log_dir.mkdir(parents=True, exist_ok=True)
        return workspace

    @property
    def log_dir(self) -> Path:
        return self.root / "logs"

    @property
    def raw_sam(self) -> Path:
        return self.root / "lane.sam"

    @property
    def fixmate_bam(self) -> Path:
        return self.root / "lane_fixmate.bam"

    @property
    def sorted_bam(self) -> Path:
        return self.root / "lane_sorted.bam"

    @property
    def sort_temp_prefix(self) -> Path:
        return self.root / "lane_temp"

    @property
    def intervals(self) -> Path:
        return self.root / "lane.intervals"

    @property
    def realigned_bam(self) -> Path:
        return self.root / "lane_realigned.bam"

    @property
    def realign_log(self) -> Path:
        return self.log_dir / "realign.log"

    @property
    def pipeline_log(self) -> Path:
        return self.log_dir / "pipeline.log"

    @property
    def metadata(self) -> Path:
        return self.root / "metadata.json"

    def stderr_log(self, stage_name: str) -> Path:
        return self.log_dir / f"{stage_name}.stderr.log"


def bam_index(bam_path: Path) -> Path:
    """Path samtools index writes for `bam_path`."""
    return bam_path.with_name(bam_path.name + ".bai")
