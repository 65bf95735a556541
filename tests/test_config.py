"""Tests for run configuration loading and validation."""

import json
import os

import pytest

from quantile_deg.config import (
    DEFAULT_ENRICHR_LIBRARIES,
    DEFAULT_GPROFILER_SOURCES,
    AnalysisConfig,
)


class TestAnalysisConfig:

    def test_defaults_are_valid(self):
        config = AnalysisConfig().validate()
        assert config.cohort == "BRCA"
        assert config.genes == ["ESR1"]
        assert config.libraries == DEFAULT_ENRICHR_LIBRARIES

    def test_normalizes_cohort_and_keeps_gene_case(self):
        config = AnalysisConfig(cohort=" luad ", genes="EGFR, C1orf43")
        assert config.cohort == "LUAD"
        assert config.genes == ["EGFR", "C1orf43"]
        assert config.run_name == "LUAD_EGFR_C1orf43"

    def test_gprofiler_default_sources(self):
        config = AnalysisConfig(enrichment_backend="gprofiler")
        assert config.libraries == DEFAULT_GPROFILER_SOURCES

    @pytest.mark.parametrize("changes", [
        {"lower_quantile": 0.8, "upper_quantile": 0.2},
        {"lower_quantile": 0.0},
        {"upper_quantile": 1.0},
        {"pvalue_cutoff": 0.0},
        {"enrichment_fdr": 1.5},
        {"log2fc_threshold": -1.0},
        {"request_delay": -0.5},
        {"enrichment_backend": "david"},
        {"genes": []},
    ])
    def test_invalid_values(self, changes):
        with pytest.raises(ValueError):
            AnalysisConfig(**changes).validate()

    def test_median_split_allowed(self):
        AnalysisConfig(lower_quantile=0.5, upper_quantile=0.5).validate()

    def test_replace_ignores_none(self):
        config = AnalysisConfig().replace(cohort="luad", upper_quantile=None)
        assert config.cohort == "LUAD"
        assert config.upper_quantile == 0.75


class TestConfigSources:

    def test_from_json_layers_over_base(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({"genes": ["PGR"], "upper_quantile": 0.9, "unknown": 1}))
        base = AnalysisConfig(cohort="LUAD", top_n=5)

        config = AnalysisConfig.from_json(path, base=base)

        assert config.cohort == "LUAD"
        assert config.top_n == 5
        assert config.genes == ["PGR"]
        assert config.upper_quantile == 0.9

    def test_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QDEG_COHORT", "coad")
        monkeypatch.setenv("QDEG_GENES", "CDX2,VIL1")
        monkeypatch.setenv("QDEG_UPPER_QUANTILE", "0.8")
        monkeypatch.setenv("QDEG_TOP_N", "25")
        monkeypatch.setenv("QDEG_ENRICHMENT_LIBRARIES", "KEGG_2021_Human, Reactome_2022")

        config = AnalysisConfig.from_env(dotenv_path=tmp_path / "missing.env")

        assert config.cohort == "COAD"
        assert config.genes == ["CDX2", "VIL1"]
        assert config.upper_quantile == 0.8
        assert config.top_n == 25
        assert config.libraries == ["KEGG_2021_Human", "Reactome_2022"]

    def test_from_dotenv_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr(os, "environ", {})
        dotenv = tmp_path / ".env"
        dotenv.write_text("QDEG_COHORT=KIRC\nQDEG_REQUEST_DELAY=0.25\n")

        config = AnalysisConfig.from_env(dotenv_path=dotenv)

        assert config.cohort == "KIRC"
        assert config.request_delay == 0.25

    def test_to_dict_round_trip(self):
        config = AnalysisConfig(cohort="LUAD", genes=["EGFR"])
        assert AnalysisConfig.from_dict(config.to_dict()) == config.replace(
            enrichment_libraries=DEFAULT_ENRICHR_LIBRARIES
        )
