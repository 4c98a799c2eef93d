"""Tests for GI panel interpretation."""

import asyncio
from unittest.mock import patch

import pytest

from analysis import gi_analysis
from analysis.gi_analysis import (
    CELIAC,
    EPI,
    IBD,
    IBS,
    SIBO,
    GIAnalysisError,
    gi_analysis_service,
    parse_numeric,
    process_digestive_enzymes,
    process_functional_markers,
    process_inflammatory_markers,
    process_microbiome,
)
from api.lab_models import GIAnalysisRequest, GITestType, LabUrgency, LabValue


def _lv(name: str, value: str, **kwargs) -> LabValue:
    return LabValue(test_name=name, value=value, **kwargs)


def _analyze(*values: LabValue, symptoms=()):
    request = GIAnalysisRequest(
        test_type=GITestType.GI_MAP, lab_values=list(values), patient_symptoms=list(symptoms),
    )
    return asyncio.run(gi_analysis_service.analyze_gi_results(request))


class TestParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [("<50", 50.0), ("2.1e6 CFU/g", 2.1e6), ("  132 ", 132.0), ("Negative", None), ("", None)],
    )
    def test_parse_numeric(self, raw, expected):
        assert parse_numeric(raw) == expected


class TestInflammatoryMarkers:
    def test_calprotectin_bands(self):
        [m] = process_inflammatory_markers([_lv("Calprotectin, Fecal", "200")])
        assert m.status == "high"
        [m] = process_inflammatory_markers([_lv("fecal calprotectin", "80")])
        assert m.status == "elevated"
        [m] = process_inflammatory_markers([_lv("Calprotectin", "<16")])
        assert m.status == "normal"
        assert m.unit == "μg/g"

    def test_non_numeric_marker_skipped(self):
        assert process_inflammatory_markers([_lv("Lactoferrin", "pending")]) == []

    def test_lysozyme(self):
        [m] = process_inflammatory_markers([_lv("Lysozyme", "750")])
        assert m.status == "elevated"


class TestDigestiveEnzymes:
    def test_elastase_bands(self):
        assert process_digestive_enzymes([_lv("Pancreatic Elastase 1", "80")])[0].adequacy == "insufficient"
        assert process_digestive_enzymes([_lv("Elastase", "150")])[0].adequacy == "borderline"
        assert process_digestive_enzymes([_lv("Elastase", ">500")])[0].adequacy == "adequate"


class TestMicrobiome:
    def test_diversity_and_beneficials(self):
        profile = process_microbiome([
            _lv("Shannon Diversity Index", "2.1"),
            _lv("Akkermansia muciniphila", "5.0e4"),
        ])
        assert profile.bacterial_diversity.diversity_status == "low"
        [akk] = profile.beneficial_bacteria
        assert akk.status == "low"

    def test_missing_diversity_is_moderate(self):
        assert process_microbiome([]).bacterial_diversity.diversity_status == "moderate"

    def test_pathogens_only_when_positive(self):
        profile = process_microbiome([
            _lv("Giardia", "2.5e3"),
            _lv("Salmonella", "Not Detected"),
            _lv("C. difficile Toxin A", "Positive"),
        ])
        by_name = {p.organism: p for p in profile.pathogenic_organisms}
        assert set(by_name) == {"Giardia lamblia", "Clostridium difficile"}
        assert by_name["Giardia lamblia"].clinical_relevance.startswith("Elevated abundance")
        assert by_name["Clostridium difficile"].abundance == 0.0

    def test_resistance_genes(self):
        profile = process_microbiome([_lv("vanA", "Detected"), _lv("mecA", "Negative")])
        genes = {g.gene: g.detected for g in profile.antibiotic_resistance_genes}
        assert genes == {"vanA": True, "mecA": False}


class TestFunctionalMarkers:
    def test_permeability(self):
        markers = process_functional_markers([_lv("Zonulin", "120")])
        assert markers.zonulin.status == "elevated"
        assert markers.permeability_assessment == "significantly_compromised"

    def test_defaults_when_absent(self):
        markers = process_functional_markers([])
        assert markers.permeability_assessment == "intact"
        assert markers.anti_gliadin.status == "negative"
        assert markers.anti_ttg.status == "negative"

    def test_celiac_serology(self):
        markers = process_functional_markers([
            _lv("Anti-tTG IgA", "12"), _lv("Anti-Gliadin IgA", "25"),
        ])
        assert markers.anti_ttg.status == "positive"
        assert markers.anti_gliadin.status == "borderline"

    def test_negative_result_with_cutoff(self):
        markers = process_functional_markers([
            _lv("Anti-tTG IgA", "Negative (<4)"), _lv("Anti-Gliadin IgA", "negative <20"),
        ])
        assert markers.anti_ttg.status == "negative"
        assert markers.anti_ttg.value == 0.0
        assert markers.anti_gliadin.status == "negative"

    def test_short_chain_fatty_acids_use_reference_range(self):
        markers = process_functional_markers([
            _lv("Butyrate", "5", reference_range_low=10, reference_range_high=30),
        ])
        [scfa] = markers.short_chain_fatty_acids
        assert scfa.type == "butyrate"
        assert scfa.status == "low"


class TestDifferentials:
    def test_inflammation_suggests_ibd(self):
        results = _analyze(_lv("Calprotectin", "300"), symptoms=["Bloody diarrhea"])
        result = results[0]
        [dx] = result.differential_diagnoses
        assert dx.condition == IBD
        assert "Reported symptom: Bloody diarrhea" in dx.supporting_evidence
        assert result.urgency_level == LabUrgency.HIGH
        assert result.treatment_recommendations.medical[0] == "Gastroenterology consultation recommended"

    def test_very_high_calprotectin_is_critical(self):
        assert _analyze(_lv("Calprotectin", "850"))[0].urgency_level == LabUrgency.CRITICAL

    def test_low_diversity_without_inflammation(self):
        result = _analyze(_lv("Shannon", "2.0"), _lv("Calprotectin", "20"))[0]
        conditions = [d.condition for d in result.differential_diagnoses]
        assert conditions == [IBS, SIBO]
        assert result.urgency_level == LabUrgency.MEDIUM
        assert any("Probiotic" in s for s in result.treatment_recommendations.supplements)

    def test_no_sibo_without_dysbiosis(self):
        result = _analyze(_lv("Shannon", "3.8"))[0]
        assert result.differential_diagnoses == []
        assert result.urgency_level == LabUrgency.LOW
        assert result.treatment_recommendations.medical == []

    def test_celiac_and_epi(self):
        result = _analyze(_lv("tTG IgA", "15"), _lv("Elastase", "60"))[0]
        conditions = {d.condition for d in result.differential_diagnoses}
        assert conditions == {CELIAC, EPI}
        plan = result.treatment_recommendations
        assert plan.dietary[0] == "Continue gluten intake until celiac workup is complete"
        assert any("Digestive enzymes" in s for s in plan.supplements)


class TestGIAnalysisService:
    def test_one_result_per_provider(self):
        results = _analyze(_lv("Calprotectin", "40"))
        assert [r.ai_provider for r in results] == ["claude", "openai", "perplexity"]
        assert [r.confidence for r in results] == [0.88, 0.85, 0.82]

    def test_all_providers_failing_raises(self):
        with patch.object(gi_analysis, "process_microbiome", side_effect=RuntimeError("bad")):
            with pytest.raises(GIAnalysisError):
                _analyze(_lv("Calprotectin", "40"))

    def test_status(self):
        status = gi_analysis_service.status()
        assert status["status"] == "active"
        assert status["supported_test_types"] == ["gip", "gi_map", "comprehensive"]
