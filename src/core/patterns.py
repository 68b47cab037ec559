"""
NeuroNote Field Patterns
========================

Ordered matcher tables for every extractable field.

Each field owns an ordered list of ``Matcher``s. For any span of text the
first matcher that fires wins; later matchers that overlap an accepted span
are dropped. Base confidences (0.5-0.95) reflect how explicit the phrasing
is: labelled values ("Admission date: ...") score highest, bare mentions
lowest.

Lexicon-backed fields (procedures, complications, medications, diagnoses)
are matched with FlashText against the synonym tables in
``src.core.lexicon``; the context cues below only adjust their confidence.

Patterns can be exported to and reloaded from YAML for maintainability:

    table = MatcherTable.default()
    table.save_to_yaml(Path("config/patterns.yaml"))
    table = MatcherTable.from_yaml(Path("config/patterns.yaml"))
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from src.core.dates import DATE_PATTERN
from src.shared.enums import FieldType
from src.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

D = DATE_PATTERN


@dataclass(frozen=True)
class Matcher:
    """
    One field-specific pattern.

    The ``value`` named group (or the whole match when absent) becomes the
    field's value and source span.
    """
    name: str
    pattern: str
    base_confidence: float
    flags: int = re.IGNORECASE

    def __post_init__(self):
        if not 0.5 <= self.base_confidence <= 0.95:
            raise ConfigurationError(
                f"Matcher {self.name}: base confidence {self.base_confidence} outside [0.5, 0.95]"
            )

    @property
    def compiled(self) -> re.Pattern:
        return _compile(self.pattern, self.flags)


_COMPILED: Dict[tuple, re.Pattern] = {}


def _compile(pattern: str, flags: int) -> re.Pattern:
    key = (pattern, flags)
    compiled = _COMPILED.get(key)
    if compiled is None:
        compiled = re.compile(pattern, flags)
        _COMPILED[key] = compiled
    return compiled


# =============================================================================
# DEFAULT REGEX MATCHERS (ordered, most explicit first)
# =============================================================================

def _default_regex_matchers() -> Dict[FieldType, List[Matcher]]:
    return {
        FieldType.AGE: [
            Matcher("age_year_old", r"\b(?P<value>\d{1,3})[- ]?(?:years?[- ]old|yo\b|y/o|y\.o\.)", 0.95),
            Matcher("age_label", r"\bage[:\s]+(?P<value>\d{1,3})\b", 0.9),
            Matcher("age_sex_shorthand", r"\b(?P<value>\d{1,3})\s?[MF]\b", 0.8, 0),
        ],
        FieldType.GENDER: [
            Matcher("gender_word", r"\b(?P<value>male|female|man|woman|gentleman|lady)\b", 0.9),
            Matcher("gender_label", r"\b(?:sex|gender)[:\s]+(?P<value>[MF])\b", 0.9),
            Matcher("gender_shorthand", r"\b\d{1,3}\s?(?P<value>[MF])\b", 0.8, 0),
            Matcher("gender_pronoun", r"\b(?P<value>he|she|his|her|him)\b", 0.5),
        ],
        FieldType.ADMISSION_DATE: [
            Matcher("admission_label", rf"\badmission date[:\s]+(?P<value>{D})", 0.95),
            Matcher("date_of_admission", rf"\bdate of admission[:\s]+(?P<value>{D})", 0.95),
            Matcher("doa_label", rf"\bDOA[:\s]+(?P<value>(?i:{D}))", 0.9, 0),
            Matcher("admitted_on", rf"\badmitted\b[^.\n]{{0,40}}?\bon\s+(?P<value>{D})", 0.9),
            Matcher("presented_on", rf"\bpresented\b[^.\n]{{0,40}}?\bon\s+(?P<value>{D})", 0.8),
        ],
        FieldType.DISCHARGE_DATE: [
            Matcher("discharge_label", rf"\bdischarge date[:\s]+(?P<value>{D})", 0.95),
            Matcher("date_of_discharge", rf"\bdate of discharge[:\s]+(?P<value>{D})", 0.95),
            Matcher("discharged_on", rf"\bdischarged\b[^.\n]{{0,40}}?\bon\s+(?P<value>{D})", 0.9),
        ],
        FieldType.SURGERY_DATE: [
            Matcher("surgery_label", rf"\b(?:surgery|operation|procedure) date[:\s]+(?P<value>{D})", 0.95),
            Matcher("date_of_surgery", rf"\bdate of (?:surgery|operation)[:\s]+(?P<value>{D})", 0.95),
            Matcher("dos_label", rf"\bDOS[:\s]+(?P<value>(?i:{D}))", 0.9, 0),
            Matcher(
                "or_on",
                rf"\b(?:[Tt]aken to the (?:OR|operating room)|OR)\b[^.\n]{{0,40}}?\bon\s+(?P<value>(?i:{D}))",
                0.85,
                0,
            ),
            Matcher("underwent_on", rf"\bunderwent\b[^.\n]{{0,80}}?\bon\s+(?P<value>{D})", 0.85),
        ],
        FieldType.ICTUS_DATE: [
            Matcher("ictus_label", rf"\b(?:date of )?ictus[:\s]+(?:on\s+)?(?P<value>{D})", 0.9),
            Matcher("onset_label", rf"\b(?:symptom )?onset[:\s]+(?:on\s+)?(?P<value>{D})", 0.85),
            Matcher("onset_on", rf"\b(?:sudden|acute) onset\b[^.\n]{{0,40}}?\bon\s+(?P<value>{D})", 0.8),
        ],
        FieldType.DIAGNOSIS: [
            Matcher(
                "diagnosis_label",
                r"\b(?:discharge |admission |principal |primary )?diagnos(?:is|es)[:\s]+(?P<value>[^\n.;]{3,120})",
                0.9,
            ),
        ],
        FieldType.FUNCTIONAL_SCORE: [
            Matcher(
                "kps",
                r"\b(?P<scale>KPS|Karnofsky(?: Performance (?:Status|Score))?)\s*(?:score)?\s*(?:of|:|=|was|is)?\s*(?P<score>\d{1,3})\b",
                0.9,
            ),
            Matcher(
                "ecog",
                r"\b(?P<scale>ECOG)\s*(?:performance status|PS)?\s*(?:of|:|=|was|is)?\s*(?P<score>\d)\b",
                0.9,
            ),
            Matcher(
                "mrs",
                r"\b(?P<scale>mRS|modified Rankin(?: Scale)?)\s*(?:score)?\s*(?:of|:|=|was|is)?\s*(?P<score>\d)\b",
                0.9,
            ),
            Matcher(
                "gcs",
                r"\b(?P<scale>GCS|Glasgow Coma Scale)\s*(?:score)?\s*(?:of|:|=|was|is)?\s*(?P<score>\d{1,2})\b",
                0.9,
            ),
            Matcher(
                "hunt_hess",
                r"\b(?P<scale>Hunt[- ](?:and[- ])?Hess|HH)\s*(?:grade)?\s*(?:of|:|=)?\s*(?P<score>[1-5]|IV|V|I{1,3})\b",
                0.9,
            ),
            Matcher(
                "fisher",
                r"\b(?P<scale>(?:modified )?Fisher)\s*(?:grade|scale)?\s*(?:of|:|=)?\s*(?P<score>[0-4]|IV|I{1,3})\b",
                0.85,
            ),
        ],
        FieldType.DISCHARGE_DISPOSITION: [
            Matcher(
                "disposition_label",
                r"\b(?:discharge )?disposition[:\s]+(?P<value>[^\n.;]{2,80})",
                0.9,
            ),
            Matcher(
                "discharged_to",
                r"\bdischarged?\s+(?:to\s+)?(?:an?\s+|the\s+)?(?P<value>home with (?:services|home health|vna)"
                r"|acute rehab\w*|inpatient rehab\w*|skilled nursing facility|SNF|IRF|LTACH"
                r"|hospice|nursing home|subacute rehab\w*|home)\b",
                0.85,
            ),
            Matcher("expired", r"\b(?:patient\s+)?(?P<value>expired|passed away)\b", 0.8),
        ],
        FieldType.FOLLOW_UP: [
            Matcher("follow_up_with", r"\bfollow[- ]?up\s+(?:with|in)\s+(?P<value>[^\n.;]{3,100})", 0.85),
            Matcher("f_u", r"\bf/u\s+(?:with|in)\s+(?P<value>[^\n.;]{3,100})", 0.8),
            Matcher("return_to_clinic", r"\b(?:return to|see in) clinic\s+(?P<value>in [^\n.;]{3,60})", 0.75),
        ],
    }


# =============================================================================
# LEXICON CONTEXT CUES
# =============================================================================

LEXICON_CONFIDENCE = {
    FieldType.PROCEDURE: {"explicit": 0.9, "bare": 0.75},
    FieldType.COMPLICATION: {"explicit": 0.9, "bare": 0.75},
    FieldType.DIAGNOSIS: {"explicit": 0.85, "bare": 0.7},
    FieldType.MEDICATION: {"explicit": 0.95, "bare": 0.8},
}

PROCEDURE_CUES = [
    r"\bunderwent\b", r"\bs/p\b", r"\bstatus post\b", r"\bperformed\b",
    r"\btaken to the (?:OR|operating room)\b", r"\bwas done\b", r"\bplaced\b",
    r"\bpost-?op(?:erative)?\b",
]

COMPLICATION_INCLUSION_CUES = [
    r"\bdeveloped\b", r"\bcomplicated by\b", r"\bnew\b", r"\bnoted\b",
    r"\bfound to have\b", r"\bsuffered\b", r"\bexperienced\b", r"\bconsistent with\b",
]

# Mention is about a risk or a preventive measure, not an event
COMPLICATION_HYPOTHETICAL_CUES = [
    r"\bmonitor(?:ed|ing)? for\b", r"\brisk of\b", r"\bat risk\b", r"\bprophyla\w*\b",
    r"\bprevent\w*\b", r"\bprecautions?\b", r"\bwatch(?:ed)? for\b", r"\bscreen(?:ed|ing)? for\b",
    r"\bconcern for\b", r"\bevaluate for\b",
]

DIAGNOSIS_CUES = [
    r"\bpresent(?:ed|ing|s) with\b", r"\badmitted (?:for|with)\b", r"\bdiagnosed with\b",
    r"\bfound to have\b", r"\bconsistent with\b", r"\bsecondary to\b",
]

MEDICATION_EXCLUSION_CUES = [r"\ballerg\w*\b", r"\bintoleran\w*\b"]

MEDICATION_STATUS_CUES = [
    ("discontinued", r"\b(?:discontinued|stopped|held|d/c'?d)\b"),
    ("started", r"\b(?:started|initiated|begun|began|new)\b"),
    ("changed", r"\b(?:increased|decreased|changed|titrated|tapered)\b"),
    ("continued", r"\b(?:continue[sd]?|resume[sd]?)\b"),
]

DOSAGE_TAIL = re.compile(
    r"\s*(?:(?P<dose>\d+(?:\.\d+)?)\s*(?P<unit>mg|mcg|g|units?|mL|mEq|%)(?![A-Za-z]))"
    r"(?:\s+(?P<route>PO|IV|SQ|SC|IM|PR|subcutaneous(?:ly)?|by mouth|orally|intravenous(?:ly)?))?"
    r"(?:\s+(?P<frequency>daily|once daily|twice daily|BID|TID|QID|QHS|QD|nightly|weekly"
    r"|q\s?\d{1,2}\s?h(?:ours?)?|every \d{1,2} hours|PRN|as needed))?",
    re.IGNORECASE,
)

FREQUENCY_ONLY_TAIL = re.compile(
    r"\s*(?P<frequency>daily|once daily|twice daily|BID|TID|QID|QHS|nightly|PRN|as needed)\b",
    re.IGNORECASE,
)

SCORE_RANGES = {
    "kps": (0, 100),
    "ecog": (0, 5),
    "mrs": (0, 6),
    "gcs": (3, 15),
    "hunt_hess": (1, 5),
    "fisher": (1, 4),
}

ROMAN_NUMERALS = {"I": 1, "II": 2, "III": 3, "IV": 4, "V": 5}

GENDER_VALUES = {
    "male": "male", "man": "male", "gentleman": "male", "m": "male",
    "he": "male", "his": "male", "him": "male",
    "female": "female", "woman": "female", "lady": "female", "f": "female",
    "she": "female", "her": "female",
}


# =============================================================================
# MATCHER TABLE
# =============================================================================

@dataclass
class MatcherTable:
    """Ordered regex matchers per field, loadable from YAML."""
    matchers: Dict[FieldType, List[Matcher]] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "MatcherTable":
        return cls(matchers=_default_regex_matchers())

    @classmethod
    def from_yaml(cls, config_path: Path) -> "MatcherTable":
        """
        Load matchers from YAML.

        Layout::

            age:
              - name: age_year_old
                pattern: '\\b(?P<value>\\d{1,3}) year-old'
                base_confidence: 0.95

        Fields missing from the file keep their default matchers.
        """
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        table = cls.default()
        for key, entries in data.items():
            try:
                field_type = FieldType(key)
            except ValueError as e:
                raise ConfigurationError(f"Unknown field in {config_path}: {key}") from e
            table.matchers[field_type] = [
                Matcher(
                    name=entry["name"],
                    pattern=entry["pattern"],
                    base_confidence=float(entry["base_confidence"]),
                    flags=re.IGNORECASE if entry.get("ignore_case", True) else 0,
                )
                for entry in entries
            ]

        logger.info(f"Loaded matchers for {len(data)} fields from {config_path}")
        return table

    def save_to_yaml(self, config_path: Path) -> None:
        """Export the current table, e.g. to seed an editable config."""
        data = {
            field_type.value: [
                {
                    "name": m.name,
                    "pattern": m.pattern,
                    "base_confidence": m.base_confidence,
                    "ignore_case": bool(m.flags & re.IGNORECASE),
                }
                for m in matchers
            ]
            for field_type, matchers in self.matchers.items()
        }
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        logger.info(f"Saved matchers to {config_path}")

    def for_field(self, field_type: FieldType) -> List[Matcher]:
        return self.matchers.get(field_type, [])


def any_cue(patterns: List[str], text: str) -> Optional[re.Match]:
    """First match of any cue pattern in ``text``."""
    for pattern in patterns:
        match = _compile(pattern, re.IGNORECASE).search(text)
        if match:
            return match
    return None
