"""
Shared pytest fixtures for the test suite.

External tools are never executed. `fake_tools` replaces
`variant_pipeline.commands.run_command` with a recorder that creates the
files each tool would have written, so stage wiring can be checked end to
end inside a temporary directory.
"""
import gzip
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional

import pytest

from variant_pipeline import commands
from variant_pipeline.config import PipelineConfig, ToolPaths

SAMPLE_VCF = (
    "##fileformat=VCFv4.2\n"
    "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n"
    "chr1\t100\t.\tA\tG\t50\tPASS\tDP=10\n"
    "chr1\t200\t.\tA\tAT\t40\tPASS\tDP=12\n"
    "chr2\t300\t.\tCTT\tC\t35\tPASS\tDP=8\n"
)


class FakeTools:
    """Stand-in for run_command that mimics the outputs of bwa/samtools/GATK/bcftools/gzip."""

    def __init__(self, vcf_text: str = SAMPLE_VCF):
        self.vcf_text = vcf_text
        self.calls: List[List[str]] = []
        self.fail_on: Optional[str] = None
        self.called_bam: Optional[str] = None

    def __call__(self, command, *, cwd=None, env=None, stdout=None, stderr=None, verbose=False):
        cmd = [str(part) for part in command]
        self.calls.append(cmd)
        if self.fail_on is not None and self.fail_on in " ".join(cmd):
            if stderr is not None:
                stderr.write(f"[fake] {cmd[0]} exploded\n")
            raise subprocess.CalledProcessError(1, cmd)

        if cmd[0] == "bash":
            self._shell(cmd[-1])
        elif cmd[:2] == ["bwa", "index"]:
            for ext in [".amb", ".ann", ".bwt", ".pac", ".sa"]:
                Path(cmd[2] + ext).write_text("")
        elif cmd[:2] == ["bwa", "mem"]:
            missing = [path for path in cmd[-2:] if not Path(path).is_file()]
            if missing:
                stderr.write(f"[E::main_mem] fail to open file `{missing[0]}'.\n")
                raise subprocess.CalledProcessError(1, cmd)
            stdout.write("@HD\tVN:1.6\n")
        elif cmd[:2] == ["samtools", "fixmate"]:
            Path(cmd[-1]).write_text("bam")
        elif cmd[:2] == ["samtools", "sort"]:
            Path(cmd[cmd.index("-o") + 1]).write_text("sorted")
        elif cmd[:2] == ["samtools", "index"]:
            Path(cmd[-1] + ".bai").write_text("")
        elif cmd[:2] == ["samtools", "faidx"]:
            Path(cmd[-1] + ".fai").write_text("")
        elif cmd[:2] == ["samtools", "dict"]:
            Path(cmd[cmd.index("-o") + 1]).write_text("@HD\n")
        elif cmd[0] == "java":
            Path(cmd[cmd.index("-o") + 1]).write_text("gatk")
        elif cmd[0] == "gzip":
            source = Path(cmd[-1])
            with gzip.open(source, "rb") as handle:
                source.with_suffix("").write_bytes(handle.read())
        return subprocess.CompletedProcess(cmd, 0)

    def _shell(self, script: str) -> None:
        tokens = shlex.split(script.split("\n", 1)[1])
        mpileup = tokens.index("mpileup")
        self.called_bam = tokens[tokens.index("-f", mpileup) + 2]
        output = Path(tokens[tokens.index("-o", tokens.index("call")) + 1])
        with gzip.open(output, "wt") as handle:
            handle.write(self.vcf_text)

    def executables(self) -> List[str]:
        return [call[0] if call[0] != "bash" else "bcftools" for call in self.calls]

    def ran(self, fragment: str) -> bool:
        return any(fragment in " ".join(call) for call in self.calls)


@pytest.fixture
def fake_tools(monkeypatch) -> FakeTools:
    """Patch external command execution with a FakeTools recorder."""
    fake = FakeTools()
    monkeypatch.setattr(commands, "run_command", fake)
    monkeypatch.setattr(commands, "check_dependencies", lambda dependencies: None)
    return fake


@pytest.fixture
def run_dir(tmp_path, monkeypatch) -> Path:
    """Temporary working directory holding reads, reference and known-indels inputs."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "reads_1.fq").write_text("@r1\nACGT\n+\nIIII\n")
    (tmp_path / "reads_2.fq").write_text("@r1\nACGT\n+\nIIII\n")
    (tmp_path / "ref.fa").write_text(">chr1\nACGTACGT\n")
    (tmp_path / "mills.vcf.gz").write_bytes(b"")
    (tmp_path / "GenomeAnalysisTK.jar").write_bytes(b"")
    return tmp_path


@pytest.fixture
def make_config(run_dir):
    """Factory for PipelineConfig objects rooted in `run_dir`."""

    def _make(**overrides) -> PipelineConfig:
        values = dict(
            reads1=run_dir / "reads_1.fq",
            reads2=run_dir / "reads_2.fq",
            ref=run_dir / "ref.fa",
            output="sample",
            mills_file=run_dir / "mills.vcf.gz",
            tools=ToolPaths(gatk_jar=str(run_dir / "GenomeAnalysisTK.jar")),
        )
        values.update(overrides)
        return PipelineConfig(**values)

    return _make


@pytest.fixture
def vcf_file(tmp_path) -> Path:
    path = tmp_path / "calls.vcf"
    path.write_text(SAMPLE_VCF)
    return path
