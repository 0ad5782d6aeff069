"""
Tests for variant_pipeline/bed.py

Tests cover:
- Header stripping and column derivation
- SNP / indel routing by length delta
- Compressed input and malformed records
"""
import gzip

import pandas as pd
import pytest

from variant_pipeline.bed import bed_table, read_variant_table, split_by_delta, strip_chr_prefix, vcf_to_bed

HEADER = "#CHROM\tPOS\tID\tREF\tALT\n"


def _write_vcf(path, *records):
    path.write_text(HEADER + "".join(record + "\n" for record in records))
    return path


class TestVcfToBed:
    """Tests for the end-to-end conversion."""

    def test_insertion_goes_to_indels(self, tmp_path):
        """chr1 100 . A AT becomes 1/100/101/1 in the indels file."""
        vcf = _write_vcf(tmp_path / "ins.vcf", "chr1\t100\t.\tA\tAT")
        outputs = vcf_to_bed(vcf, str(tmp_path / "ins"))

        assert outputs.table.read_text() == "1\t100\t101\t1\n"
        assert outputs.indels.read_text() == "1\t100\t101\t1\n"
        assert outputs.snps.read_text() == ""

    def test_substitution_goes_to_snps(self, tmp_path):
        """chr1 100 . A G becomes 1/100/100/0 in the SNPs file."""
        vcf = _write_vcf(tmp_path / "snp.vcf", "chr1\t100\t.\tA\tG")
        outputs = vcf_to_bed(vcf, str(tmp_path / "snp"))

        assert outputs.table.read_text() == "1\t100\t100\t0\n"
        assert outputs.snps.read_text() == "1\t100\t100\t0\n"
        assert outputs.indels.read_text() == ""

    def test_deletion_has_negative_delta(self, tmp_path):
        """A deletion ends before its start position."""
        vcf = _write_vcf(tmp_path / "del.vcf", "chr2\t300\t.\tCTT\tC\t35\tPASS\tDP=8")
        outputs = vcf_to_bed(vcf, str(tmp_path / "del"))
        assert outputs.indels.read_text() == "2\t300\t298\t-2\n"

    def test_reads_gzipped_vcf(self, tmp_path):
        """A .vcf.gz input is read transparently."""
        vcf = tmp_path / "calls.vcf.gz"
        with gzip.open(vcf, "wt") as handle:
            handle.write(HEADER + "chrX\t5\t.\tG\tA\n")
        outputs = vcf_to_bed(vcf, str(tmp_path / "calls"))
        assert outputs.snps.read_text() == "X\t5\t5\t0\n"

    def test_header_only_vcf(self, tmp_path):
        """A VCF with no records yields empty outputs."""
        vcf = _write_vcf(tmp_path / "empty.vcf")
        outputs = vcf_to_bed(vcf, str(tmp_path / "empty"))
        assert outputs.table.read_text() == ""
        assert outputs.snps.read_text() == ""
        assert outputs.indels.read_text() == ""

    def test_missing_vcf(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            vcf_to_bed(tmp_path / "absent.vcf", str(tmp_path / "absent"))


class TestHelpers:
    """Tests for the individual table helpers."""

    def test_strip_chr_prefix(self):
        assert strip_chr_prefix("chr1") == "1"
        assert strip_chr_prefix("chrUn_KI270302v1") == "Un_KI270302v1"
        assert strip_chr_prefix("MT") == "MT"

    def test_split_by_delta(self, vcf_file):
        """Only zero-delta rows count as SNPs."""
        table = bed_table(read_variant_table(vcf_file))
        snps, indels = split_by_delta(table)
        assert snps["start"].tolist() == [100]
        assert indels["delta"].tolist() == [1, -2]

    def test_bed_table_columns(self, vcf_file):
        table = bed_table(read_variant_table(vcf_file))
        expected = pd.DataFrame(
            {
                "chrom": ["1", "1", "2"],
                "start": [100, 200, 300],
                "end": [100, 201, 298],
                "delta": [0, 1, -2],
            }
        )
        pd.testing.assert_frame_equal(table.reset_index(drop=True), expected, check_dtype=False)

    def test_multiallelic_alt_uses_field_length(self, tmp_path):
        """ALT lengths are measured over the whole field."""
        vcf = _write_vcf(tmp_path / "multi.vcf", "chr1\t10\t.\tA\tG,T")
        table = bed_table(read_variant_table(vcf))
        assert table["delta"].tolist() == [2]

    def test_short_record_is_rejected(self, tmp_path):
        vcf = _write_vcf(tmp_path / "bad.vcf", "chr1\t10\t.")
        with pytest.raises(ValueError, match="expected at least 5 columns"):
            read_variant_table(vcf)
