"""Paired-end alignment and variant calling driver (bwa, samtools, GATK 3, bcftools)."""

__version__ = "0.1.0"
