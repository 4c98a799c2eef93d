"""
Gastroenterology panel (GIP) and GI-MAP interpretation.

Markers are located by case-insensitive substring match on the test name,
so "Calprotectin, Fecal" and "fecal calprotectin" both resolve. Every
provider applies the same clinical rules; providers differ only in the
confidence they report.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Optional, Sequence

from api.lab_models import (
    BacterialDiversity,
    ClinicalFindings,
    DigestiveEnzyme,
    FunctionalMarkers,
    GIAnalysisRequest,
    GIAnalysisResult,
    GIDifferential,
    GITestType,
    InflammatoryMarker,
    LabUrgency,
    LabValue,
    MarkerStatus,
    MicrobiomeProfile,
    OrganismAbundance,
    PathogenFinding,
    ResistanceGene,
    ShortChainFattyAcid,
    TreatmentRecommendations,
)

logger = logging.getLogger(__name__)

PROVIDER_CONFIDENCE = {"claude": 0.88, "openai": 0.85, "perplexity": 0.82}

IBD = "Inflammatory Bowel Disease (IBD)"
IBS = "Irritable Bowel Syndrome (IBS)"
SIBO = "Small Intestinal Bacterial Overgrowth (SIBO)"
CELIAC = "Celiac Disease"
EPI = "Exocrine Pancreatic Insufficiency (EPI)"

_NUMBER_RE = re.compile(r"[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?")
_POSITIVE_WORDS = ("positive", "detected", "present")
_NEGATIVE_WORDS = ("negative", "not detected", "absent", "none")

# (match, display name, optimal low, optimal high)
_BENEFICIAL_ORGANISMS = [
    ("lactobacillus", "Lactobacillus spp.", 1e6, 1e8),
    ("bifidobacterium", "Bifidobacterium spp.", 1e6, 1e8),
    ("akkermansia", "Akkermansia muciniphila", 1e5, 1e7),
    ("faecalibacterium", "Faecalibacterium prausnitzii", 1e7, 1e9),
]

# (match, display name, organism type, pathogenicity)
_PATHOGENS = [
    ("difficile", "Clostridium difficile", "bacteria", "high"),
    ("helicobacter", "Helicobacter pylori", "bacteria", "high"),
    ("salmonella", "Salmonella", "bacteria", "high"),
    ("campylobacter", "Campylobacter", "bacteria", "high"),
    ("norovirus", "Norovirus", "virus", "high"),
    ("giardia", "Giardia lamblia", "parasite", "high"),
    ("blastocystis", "Blastocystis hominis", "parasite", "moderate"),
    ("candida", "Candida albicans", "fungus", "moderate"),
]

# (match, gene name, antibiotic class)
_RESISTANCE_GENES = [
    ("vana", "vanA", "vancomycin"),
    ("vanb", "vanB", "vancomycin"),
    ("meca", "mecA", "methicillin"),
    ("ctx-m", "CTX-M", "extended-spectrum beta-lactam"),
    ("kpc", "KPC", "carbapenem"),
    ("ndm", "NDM", "carbapenem"),
]

_PATHOGEN_SIGNIFICANCE_THRESHOLD = 1000


class GIAnalysisError(RuntimeError):
    """Raised when no provider could produce a GI analysis."""


def find_value(lab_values: Sequence[LabValue], *needles: str) -> Optional[LabValue]:
    """First lab value whose name contains any needle (case-insensitive)."""
    for lv in lab_values:
        name = lv.test_name.lower()
        if any(n in name for n in needles):
            return lv
    return None


def parse_numeric(raw: str) -> Optional[float]:
    """Pull the first number out of a result string ("<50", "2.1e6 CFU/g")."""
    match = _NUMBER_RE.search(raw or "")
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def _is_positive(lv: LabValue) -> bool:
    text = (lv.value or "").strip().lower()
    if any(w in text for w in _NEGATIVE_WORDS):
        return False
    if any(w in text for w in _POSITIVE_WORDS):
        return True
    number = parse_numeric(text)
    return number is not None and number > 0


def _range_status(lv: LabValue, value: float) -> str:
    if lv.reference_range_low is not None and value < lv.reference_range_low:
        return "low"
    if lv.reference_range_high is not None and value > lv.reference_range_high:
        return "high"
    return "normal"


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------


def process_inflammatory_markers(lab_values: Sequence[LabValue]) -> list[InflammatoryMarker]:
    markers: list[InflammatoryMarker] = []

    lv = find_value(lab_values, "calprotectin")
    value = parse_numeric(lv.value) if lv else None
    if value is not None:
        if value > 150:
            status, significance = "high", "Significantly elevated, suggests active intestinal inflammation (IBD likely)"
        elif value > 50:
            status, significance = "elevated", "Mildly elevated, may indicate intestinal inflammation or IBS"
        else:
            status, significance = "normal", "Normal, inflammatory bowel disease unlikely"
        markers.append(
            InflammatoryMarker(
                test_name="Calprotectin",
                value=value,
                unit=lv.unit or "μg/g",
                reference_range="<50 μg/g",
                status=status,
                clinical_significance=significance,
            )
        )

    lv = find_value(lab_values, "lactoferrin")
    value = parse_numeric(lv.value) if lv else None
    if value is not None:
        elevated = value > 7.25
        markers.append(
            InflammatoryMarker(
                test_name="Lactoferrin",
                value=value,
                unit=lv.unit or "μg/g",
                reference_range="<7.25 μg/g",
                status="elevated" if elevated else "normal",
                clinical_significance="Elevated, indicates neutrophil-mediated intestinal inflammation"
                if elevated
                else "Normal, no significant neutrophilic inflammation detected",
            )
        )

    lv = find_value(lab_values, "lysozyme")
    value = parse_numeric(lv.value) if lv else None
    if value is not None:
        elevated = value > 600
        markers.append(
            InflammatoryMarker(
                test_name="Lysozyme",
                value=value,
                unit=lv.unit or "ng/mL",
                reference_range="<600 ng/mL",
                status="elevated" if elevated else "normal",
                clinical_significance="Elevated, suggests intestinal inflammation and immune activation"
                if elevated
                else "Normal, no significant inflammatory response detected",
            )
        )

    return markers


def process_digestive_enzymes(lab_values: Sequence[LabValue]) -> list[DigestiveEnzyme]:
    enzymes: list[DigestiveEnzyme] = []

    lv = find_value(lab_values, "elastase")
    value = parse_numeric(lv.value) if lv else None
    if value is not None:
        if value < 100:
            adequacy, impact = "insufficient", "Severe pancreatic insufficiency - maldigestion likely"
        elif value < 200:
            adequacy, impact = "borderline", "Mild pancreatic insufficiency - may affect fat digestion"
        else:
            adequacy, impact = "adequate", "Normal pancreatic function"
        enzymes.append(
            DigestiveEnzyme(
                enzyme="Pancreatic Elastase",
                level=value,
                unit=lv.unit or "μg/g",
                adequacy=adequacy,
                functional_impact=impact,
            )
        )

    lv = find_value(lab_values, "chymotrypsin")
    value = parse_numeric(lv.value) if lv else None
    if value is not None:
        if value < 3:
            adequacy, impact = "insufficient", "Insufficient protein digestion capacity"
        elif value < 6:
            adequacy, impact = "borderline", "Borderline protein digestion - may benefit from enzyme support"
        else:
            adequacy, impact = "adequate", "Adequate protein digestion"
        enzymes.append(
            DigestiveEnzyme(
                enzyme="Chymotrypsin",
                level=value,
                unit=lv.unit or "U/g",
                adequacy=adequacy,
                functional_impact=impact,
            )
        )

    return enzymes


def diversity_status(shannon: Optional[float]) -> str:
    if shannon is None:
        return "moderate"
    if shannon < 2.5:
        return "low"
    if shannon < 3.5:
        return "moderate"
    return "high"


def process_microbiome(lab_values: Sequence[LabValue]) -> MicrobiomeProfile:
    shannon_lv = find_value(lab_values, "shannon")
    simpson_lv = find_value(lab_values, "simpson")
    shannon = parse_numeric(shannon_lv.value) if shannon_lv else None
    simpson = parse_numeric(simpson_lv.value) if simpson_lv else None

    beneficial = []
    for needle, name, low, high in _BENEFICIAL_ORGANISMS:
        lv = find_value(lab_values, needle)
        abundance = parse_numeric(lv.value) if lv else None
        if abundance is None:
            continue
        status = "low" if abundance < low else "high" if abundance > high else "normal"
        beneficial.append(
            OrganismAbundance(
                organism=name,
                abundance=abundance,
                optimal_range=f"{low:.0e}-{high:.0e}".replace("+0", ""),
                status=status,
            )
        )

    pathogens = []
    for needle, name, kind, pathogenicity in _PATHOGENS:
        lv = find_value(lab_values, needle)
        if lv is None or not _is_positive(lv):
            continue
        abundance = parse_numeric(lv.value) or 0.0
        significant = abundance > _PATHOGEN_SIGNIFICANCE_THRESHOLD
        pathogens.append(
            PathogenFinding(
                organism=name,
                type=kind,
                abundance=abundance,
                pathogenicity=pathogenicity,
                clinical_relevance="Elevated abundance, may contribute to GI symptoms"
                if significant
                else "Low abundance, not clinically significant",
            )
        )

    genes = []
    for needle, gene, drug in _RESISTANCE_GENES:
        lv = find_value(lab_values, needle)
        if lv is None:
            continue
        detected = _is_positive(lv)
        genes.append(
            ResistanceGene(
                gene=gene,
                detected=detected,
                clinical_implication=f"{drug.capitalize()} resistance gene detected - consider when selecting antibiotics"
                if detected
                else f"No {drug} resistance detected",
            )
        )

    return MicrobiomeProfile(
        bacterial_diversity=BacterialDiversity(
            shannon_index=shannon,
            simpson_index=simpson,
            diversity_status=diversity_status(shannon),
        ),
        beneficial_bacteria=beneficial,
        pathogenic_organisms=pathogens,
        antibiotic_resistance_genes=genes,
    )


def _serology_status(lv: Optional[LabValue], borderline: float, positive: float) -> MarkerStatus:
    if lv is None:
        return MarkerStatus(status="negative")
    text = (lv.value or "").lower()
    # "Negative (<4)" carries the assay cutoff, not a measured value
    if any(w in text for w in _NEGATIVE_WORDS):
        return MarkerStatus(value=0.0, status="negative")
    value = parse_numeric(text)
    if value is None:
        status = "positive" if _is_positive(lv) else "negative"
        return MarkerStatus(value=0.0, status=status)
    if value > positive:
        status = "positive"
    elif value >= borderline:
        status = "borderline"
    else:
        status = "negative"
    return MarkerStatus(value=value, status=status)


def process_functional_markers(lab_values: Sequence[LabValue]) -> FunctionalMarkers:
    markers = FunctionalMarkers()

    lv = find_value(lab_values, "zonulin")
    value = parse_numeric(lv.value) if lv else None
    if value is not None:
        markers.zonulin = MarkerStatus(value=value, status="elevated" if value > 107 else "normal")

    lv = find_value(lab_values, "histamine")
    value = parse_numeric(lv.value) if lv else None
    if value is not None:
        markers.histamine = MarkerStatus(value=value, status="elevated" if value > 15 else "normal")

    if "elevated" in (markers.zonulin.status, markers.histamine.status):
        markers.permeability_assessment = "significantly_compromised"

    lv = find_value(lab_values, "secretory iga", "siga")
    value = parse_numeric(lv.value) if lv else None
    if value is not None:
        status = "low" if value < 510 else "high" if value > 2010 else "normal"
        markers.secretory_iga = MarkerStatus(value=value, status=status)

    markers.anti_gliadin = _serology_status(find_value(lab_values, "gliadin"), 20, 30)
    markers.anti_ttg = _serology_status(
        find_value(lab_values, "ttg", "transglutaminase"), 4, 10,
    )

    for acid in ("acetate", "propionate", "butyrate"):
        lv = find_value(lab_values, acid)
        value = parse_numeric(lv.value) if lv else None
        if value is None:
            continue
        markers.short_chain_fatty_acids.append(
            ShortChainFattyAcid(type=acid, level=value, status=_range_status(lv, value))
        )

    return markers


# ---------------------------------------------------------------------------
# Interpretation
# ---------------------------------------------------------------------------


def generate_clinical_findings(
    inflammatory: Sequence[InflammatoryMarker],
    enzymes: Sequence[DigestiveEnzyme],
    microbiome: MicrobiomeProfile,
    functional: FunctionalMarkers,
) -> ClinicalFindings:
    findings = ClinicalFindings()

    for marker in inflammatory:
        if marker.status in ("high", "elevated"):
            findings.primary_findings.append(f"Elevated {marker.test_name}: {marker.clinical_significance}")
        else:
            findings.normal_findings.append(f"Normal {marker.test_name}: {marker.clinical_significance}")

    for enzyme in enzymes:
        if enzyme.adequacy == "insufficient":
            findings.primary_findings.append(f"{enzyme.enzyme} insufficiency: {enzyme.functional_impact}")
        elif enzyme.adequacy == "borderline":
            findings.secondary_findings.append(f"Borderline {enzyme.enzyme}: {enzyme.functional_impact}")
        else:
            findings.normal_findings.append(f"Adequate {enzyme.enzyme} function")

    if microbiome.bacterial_diversity.diversity_status == "low":
        findings.primary_findings.append("Reduced bacterial diversity (dysbiosis)")
    for organism in microbiome.beneficial_bacteria:
        if organism.status == "low":
            findings.secondary_findings.append(f"Low {organism.organism} abundance")
    for pathogen in microbiome.pathogenic_organisms:
        if pathogen.pathogenicity == "high" and pathogen.abundance > _PATHOGEN_SIGNIFICANCE_THRESHOLD:
            findings.primary_findings.append(f"{pathogen.organism} overgrowth detected")
    for gene in microbiome.antibiotic_resistance_genes:
        if gene.detected:
            findings.secondary_findings.append(f"{gene.gene} resistance gene detected")

    if functional.permeability_assessment == "significantly_compromised":
        findings.primary_findings.append("Intestinal permeability significantly compromised (leaky gut)")
    if functional.secretory_iga.status == "low":
        findings.secondary_findings.append("Low secretory IgA - compromised mucosal immunity")
    if functional.anti_gliadin.status == "positive" or functional.anti_ttg.status == "positive":
        findings.primary_findings.append("Positive celiac serology")

    return findings


def has_dysbiosis(microbiome: MicrobiomeProfile) -> bool:
    return (
        microbiome.bacterial_diversity.diversity_status == "low"
        or any(o.status == "low" for o in microbiome.beneficial_bacteria)
        or any(
            p.abundance > _PATHOGEN_SIGNIFICANCE_THRESHOLD
            for p in microbiome.pathogenic_organisms
        )
    )


def generate_differential_diagnoses(
    findings: ClinicalFindings,
    microbiome: MicrobiomeProfile,
    enzymes: Sequence[DigestiveEnzyme],
    functional: FunctionalMarkers,
    symptoms: Sequence[str] = (),
) -> list[GIDifferential]:
    diagnoses: list[GIDifferential] = []

    has_inflammation = any(
        "Calprotectin" in f or "Lactoferrin" in f for f in findings.primary_findings
    )
    low_diversity = any("diversity" in f for f in findings.primary_findings)
    symptom_evidence = [f"Reported symptom: {s}" for s in symptoms[:3]]

    if has_inflammation:
        diagnoses.append(
            GIDifferential(
                condition=IBD,
                probability=0.75,
                supporting_evidence=["Elevated inflammatory markers", "Intestinal inflammation present"] + symptom_evidence,
                additional_tests_needed=["Colonoscopy", "CT enterography", "Genetic testing"],
            )
        )

    if low_diversity and not has_inflammation:
        diagnoses.append(
            GIDifferential(
                condition=IBS,
                probability=0.65,
                supporting_evidence=["Dysbiosis present", "No significant inflammation"] + symptom_evidence,
                additional_tests_needed=["SIBO breath test", "Food sensitivity testing"],
            )
        )

    if has_dysbiosis(microbiome):
        diagnoses.append(
            GIDifferential(
                condition=SIBO,
                probability=0.45,
                supporting_evidence=["Dysbiosis pattern consistent with SIBO"],
                additional_tests_needed=["Lactulose breath test", "Glucose breath test"],
            )
        )

    if functional.anti_gliadin.status == "positive" or functional.anti_ttg.status == "positive":
        diagnoses.append(
            GIDifferential(
                condition=CELIAC,
                probability=0.6,
                supporting_evidence=["Positive celiac serology"],
                additional_tests_needed=["Duodenal biopsy", "HLA-DQ2/DQ8 genotyping"],
            )
        )

    if any(e.enzyme == "Pancreatic Elastase" and e.adequacy == "insufficient" for e in enzymes):
        diagnoses.append(
            GIDifferential(
                condition=EPI,
                probability=0.7,
                supporting_evidence=["Low pancreatic elastase"],
                additional_tests_needed=["Abdominal imaging", "Fecal fat quantification"],
            )
        )

    return diagnoses


def generate_treatment_recommendations(
    diagnoses: Sequence[GIDifferential],
    microbiome: MicrobiomeProfile,
    functional: FunctionalMarkers,
) -> TreatmentRecommendations:
    conditions = {d.condition for d in diagnoses}
    plan = TreatmentRecommendations(
        dietary=[
            "Consider elimination diet to identify trigger foods",
            "Increase prebiotic fiber intake",
            "Reduce processed foods and added sugars",
            "Consider Mediterranean diet pattern",
        ],
        lifestyle=[
            "Stress management techniques",
            "Regular moderate exercise",
            "Adequate sleep (7-9 hours)",
            "Mindful eating practices",
        ],
        monitoring=["Symptom tracking and dietary response monitoring"],
    )

    if has_dysbiosis(microbiome):
        plan.supplements.append("Probiotic supplementation with Lactobacillus and Bifidobacterium")
        plan.monitoring.append("Follow-up microbiome analysis in 6 months")
    if EPI in conditions:
        plan.supplements.append("Digestive enzymes with meals if pancreatic insufficiency present")
    if functional.permeability_assessment != "intact":
        plan.supplements.append("L-glutamine for intestinal barrier support")
    if IBD in conditions:
        plan.supplements.append("Omega-3 fatty acids for anti-inflammatory effects")
        plan.medical.append("Consider anti-inflammatory therapy if IBD suspected")
        plan.monitoring.append("Repeat inflammatory markers in 3 months")
    if CELIAC in conditions:
        plan.dietary.insert(0, "Continue gluten intake until celiac workup is complete")
    if any(p.abundance > _PATHOGEN_SIGNIFICANCE_THRESHOLD for p in microbiome.pathogenic_organisms):
        plan.medical.append("Evaluate need for antibiotic therapy for pathogenic overgrowth")
    if diagnoses:
        plan.medical.insert(0, "Gastroenterology consultation recommended")

    return plan


def determine_urgency(
    inflammatory: Sequence[InflammatoryMarker], diagnoses: Sequence[GIDifferential],
) -> LabUrgency:
    if any(m.test_name == "Calprotectin" and m.value > 600 for m in inflammatory):
        return LabUrgency.CRITICAL
    if any(m.status in ("high", "elevated") for m in inflammatory) or any(
        "IBD" in d.condition and d.probability > 0.7 for d in diagnoses
    ):
        return LabUrgency.HIGH
    if any("IBS" in d.condition or "SIBO" in d.condition for d in diagnoses):
        return LabUrgency.MEDIUM
    return LabUrgency.LOW


class GIAnalysisService:
    """Runs the GI interpretation once per provider."""

    providers = ("claude", "openai", "perplexity")

    async def _analyze(self, request: GIAnalysisRequest, provider: str) -> GIAnalysisResult:
        start = time.time()
        inflammatory = process_inflammatory_markers(request.lab_values)
        enzymes = process_digestive_enzymes(request.lab_values)
        microbiome = process_microbiome(request.lab_values)
        functional = process_functional_markers(request.lab_values)
        findings = generate_clinical_findings(inflammatory, enzymes, microbiome, functional)
        diagnoses = generate_differential_diagnoses(
            findings, microbiome, enzymes, functional, request.patient_symptoms,
        )

        return GIAnalysisResult(
            ai_provider=provider,
            inflammatory_markers=inflammatory,
            digestive_enzymes=enzymes,
            microbiome_profile=microbiome,
            functional_markers=functional,
            clinical_findings=findings,
            differential_diagnoses=diagnoses,
            treatment_recommendations=generate_treatment_recommendations(
                diagnoses, microbiome, functional,
            ),
            urgency_level=determine_urgency(inflammatory, diagnoses),
            confidence=PROVIDER_CONFIDENCE[provider],
            processing_time_ms=int(round((time.time() - start) * 1000)),
        )

    async def analyze_gi_results(self, request: GIAnalysisRequest) -> list[GIAnalysisResult]:
        start = time.time()
        outcomes = await asyncio.gather(
            *(self._analyze(request, p) for p in self.providers),
            return_exceptions=True,
        )

        results = []
        for provider, outcome in zip(self.providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("GI analysis failed for %s: %r", provider, outcome)
                continue
            results.append(outcome)

        if not results:
            raise GIAnalysisError("Failed to analyze GI results")
        logger.info(
            "Completed GI analysis in %dms with %d providers",
            int((time.time() - start) * 1000), len(results),
        )
        return results

    def status(self) -> dict:
        return {
            "service": "GI Analysis",
            "status": "active",
            "supported_test_types": [t.value for t in GITestType],
            "providers": list(self.providers),
            "capabilities": [
                "inflammatory_markers",
                "digestive_enzymes",
                "microbiome_profile",
                "functional_markers",
                "differential_diagnoses",
                "treatment_recommendations",
            ],
        }


gi_analysis_service = GIAnalysisService()
