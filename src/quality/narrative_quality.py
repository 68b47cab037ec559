"""
Narrative Quality Dimension
===========================

Lexical heuristics for how well the discharge narrative reads.

Factors (weights):
    transitions   0.25  discourse markers per sentence
    terminology   0.25  lay phrasing and undefined abbreviations
    tone          0.20  informal shorthand
    readability   0.20  sentence length
    organization  0.10  canonical section order
"""

import re
from typing import Any, Dict, List, Tuple

from src.narrative.models import CANONICAL_SECTIONS
from src.quality.base import DimensionScorer, ScoringContext, sentences, words
from src.shared.enums import DimensionName, IssueType, Severity
from src.shared.models import Issue


class NarrativeQualityScorer(DimensionScorer):
    """Transition density, terminology, tone, readability and organization."""

    name = DimensionName.NARRATIVE_QUALITY

    TRANSITION_WEIGHT = 0.25
    TERMINOLOGY_WEIGHT = 0.25
    TONE_WEIGHT = 0.20
    READABILITY_WEIGHT = 0.20
    ORGANIZATION_WEIGHT = 0.10

    # Sentences with a marker, as a fraction of all sentences, for full credit
    TARGET_TRANSITION_DENSITY = 0.2

    OPTIMAL_SENTENCE_LENGTH_MIN = 8
    OPTIMAL_SENTENCE_LENGTH_MAX = 25

    TRANSITION_MARKERS = frozenset([
        "subsequently", "following", "thereafter", "after", "then",
        "however", "therefore", "consequently", "additionally", "furthermore",
        "prior to", "on postoperative day", "on hospital day", "at discharge",
        "at the time of discharge", "initially", "ultimately", "meanwhile",
        "as a result", "given",
    ])

    # lay phrase -> clinical term
    LAY_TERMS: Dict[str, str] = {
        "brain bleed": "intracranial hemorrhage",
        "bleeding in the brain": "intracranial hemorrhage",
        "heart attack": "myocardial infarction",
        "blood thinner": "anticoagulant",
        "blood thinners": "anticoagulants",
        "water pill": "diuretic",
        "passed out": "syncope",
        "threw up": "emesis",
        "throwing up": "emesis",
        "fits": "seizures",
        "water on the brain": "hydrocephalus",
        "back surgery": "spinal surgery",
        "brain surgery": "craniotomy",
        "pain meds": "analgesics",
    }

    # Abbreviations a clinical reader expects to see undefined
    WELL_KNOWN_ABBREVIATIONS = frozenset([
        "CT", "CTA", "MRI", "MRA", "ICU", "NICU", "ED", "OR", "IV", "PO", "PRN",
        "BID", "TID", "QID", "EVD", "SAH", "ICH", "SDH", "GCS", "KPS", "ECOG",
        "MRS", "POD", "DVT", "PE", "UTI", "CSF", "EEG", "EKG", "ECG", "WHO",
        "AVM", "SNF", "PT", "OT", "DSA", "ACOM", "PCOM", "MCA", "ICA", "HH",
    ])

    ABBREVIATION_PATTERN = re.compile(r"\b([A-Z]{2,6})\b")

    INFORMAL_PATTERNS: List[Tuple[str, re.Pattern]] = [
        ("gonna", re.compile(r"\bgonna\b", re.I)),
        ("kinda", re.compile(r"\bkinda\b", re.I)),
        ("pt", re.compile(r"\bpts?\b")),
        ("c/o", re.compile(r"\bc/o\b", re.I)),
        ("w/", re.compile(r"\bw/(?!o)", re.I)),
        ("ok", re.compile(r"\bok(?:ay)?\b", re.I)),
        ("awesome", re.compile(r"\bawesome\b", re.I)),
        ("super", re.compile(r"\bsuper\s+(?:well|good|bad)\b", re.I)),
        ("!", re.compile(r"!")),
    ]

    def evaluate(self, context: ScoringContext) -> Tuple[float, List[Issue], Dict[str, Any]]:
        if context.narrative is None:
            return 0.0, [Issue(
                type=IssueType.NARRATIVE_MISSING,
                severity=Severity.MAJOR,
                suggestion="Generate or provide a discharge narrative",
            )], {}

        bodies = [body for _, body in context.narrative.ordered_sections if body]
        text = "\n".join(bodies)
        issues: List[Issue] = []

        transitions = self.compute_transitions(text, issues)
        terminology = self.compute_terminology(text, issues)
        tone = self.compute_tone(text, issues)
        readability = self.compute_readability(text, issues)
        organization = self.compute_organization(list(context.narrative.sections), issues)

        score = (
            transitions * self.TRANSITION_WEIGHT
            + terminology * self.TERMINOLOGY_WEIGHT
            + tone * self.TONE_WEIGHT
            + readability * self.READABILITY_WEIGHT
            + organization * self.ORGANIZATION_WEIGHT
        )
        details = {
            "transitions": round(transitions, 4),
            "terminology": round(terminology, 4),
            "tone": round(tone, 4),
            "readability": round(readability, 4),
            "organization": round(organization, 4),
        }
        return min(1.0, max(0.0, score)), issues, details

    # =========================================================================
    # Factors
    # =========================================================================

    def compute_transitions(self, text: str, issues: List[Issue]) -> float:
        parts = sentences(text)
        if len(parts) < 2:
            return 1.0
        with_marker = sum(
            1 for s in parts
            if any(re.search(rf"\b{re.escape(m)}\b", s.lower()) for m in self.TRANSITION_MARKERS)
        )
        density = with_marker / len(parts)
        if density < self.TARGET_TRANSITION_DENSITY / 2 and len(parts) >= 3:
            issues.append(Issue(
                type=IssueType.LACKS_TRANSITIONS,
                severity=Severity.MINOR,
                suggestion="Connect events chronologically (e.g. 'subsequently', 'on postoperative day 2')",
                details={"density": round(density, 4)},
            ))
        return min(1.0, density / self.TARGET_TRANSITION_DENSITY)

    def compute_terminology(self, text: str, issues: List[Issue]) -> float:
        lowered = text.lower()
        problems = 0

        for lay, clinical in sorted(self.LAY_TERMS.items()):
            if re.search(rf"\b{re.escape(lay)}\b", lowered):
                problems += 1
                issues.append(Issue(
                    type=IssueType.LAY_TERMINOLOGY,
                    severity=Severity.MINOR,
                    suggestion=f"Replace '{lay}' with '{clinical}'",
                    details={"phrase": lay, "replacement": clinical},
                ))

        undefined = sorted({
            abbr for abbr in self.ABBREVIATION_PATTERN.findall(text)
            if abbr not in self.WELL_KNOWN_ABBREVIATIONS
            and not re.search(rf"\({re.escape(abbr)}\)", text)
        })
        for abbr in undefined:
            problems += 1
            issues.append(Issue(
                type=IssueType.UNDEFINED_ABBREVIATION,
                severity=Severity.WARNING,
                suggestion=f"Define '{abbr}' at first use",
                details={"abbreviation": abbr},
            ))

        return max(0.0, 1.0 - 0.1 * problems)

    def compute_tone(self, text: str, issues: List[Issue]) -> float:
        found = [label for label, pattern in self.INFORMAL_PATTERNS if pattern.search(text)]
        if found:
            issues.append(Issue(
                type=IssueType.INFORMAL_TONE,
                severity=Severity.MINOR,
                suggestion=f"Use professional phrasing instead of: {', '.join(found)}",
                details={"markers": found},
            ))
        return max(0.0, 1.0 - 0.2 * len(found))

    def compute_readability(self, text: str, issues: List[Issue]) -> float:
        parts = sentences(text)
        if not parts:
            return 0.0

        lengths = [len(words(s)) for s in parts]
        avg_length = sum(lengths) / len(lengths)
        min_opt = self.OPTIMAL_SENTENCE_LENGTH_MIN
        max_opt = self.OPTIMAL_SENTENCE_LENGTH_MAX

        if min_opt <= avg_length <= max_opt:
            score = 1.0
        elif avg_length < min_opt:
            score = max(0.3, avg_length / min_opt)
        else:
            score = max(0.3, 1.0 - (avg_length - max_opt) / 30)

        if score < 0.6:
            issues.append(Issue(
                type=IssueType.POOR_READABILITY,
                severity=Severity.MINOR,
                suggestion=(
                    f"Average sentence length is {avg_length:.0f} words; "
                    f"aim for {min_opt}-{max_opt}"
                ),
                details={"average_sentence_length": round(avg_length, 2)},
            ))
        return score

    def compute_organization(self, section_names: List[str], issues: List[Issue]) -> float:
        ranks = [CANONICAL_SECTIONS.index(n) for n in section_names if n in CANONICAL_SECTIONS]
        coverage = min(1.0, len(ranks) / 4)
        if ranks != sorted(ranks):
            issues.append(Issue(
                type=IssueType.SECTION_ORDER,
                severity=Severity.WARNING,
                suggestion="Order sections chronologically: presentation, hospital course, procedures, discharge",
            ))
            return coverage * 0.7
        return coverage
