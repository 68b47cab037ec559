"""
NeuroNote Temporal Resolver
===========================

Places every date-bearing entity on the admission timeline.

Each entity runs its own small state machine::

    UNCLASSIFIED -> SCANNING -> CLASSIFIED

While SCANNING the resolver looks, in order, for:

1. An explicit cue phrase in the entity's clause within ``window_chars``
   ("history of" -> PAST, "planned" -> FUTURE, "on admission" -> ADMISSION).
   Nearest cue wins; equal distance goes to the higher weight.
2. Position relative to the anchor dates (date before admission -> PAST,
   after discharge -> FUTURE, within the stay -> PRESENT).
3. Nothing usable -> UNKNOWN with confidence 0.0.

Malformed dates never abort the run: the failure is logged and the entity
is classified UNKNOWN / 0.0.

Also resolves "POD 3" / "hospital day 2" offsets against the surgery and
admission anchors, and marks procedure mentions that refer back to an
earlier event ("s/p coiling") as references.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import List, Optional, Tuple

from src.core.config import TemporalConfig
from src.core.dates import parse_clinical_date
from src.shared.enums import CueType, FieldType, ResolutionState, TemporalCategory
from src.shared.exceptions import TemporalResolutionFailure
from src.shared.models import DatedEvent, ExtractionResult, TemporalContext

logger = logging.getLogger(__name__)


# =============================================================================
# Cue Tables
# =============================================================================

CATEGORY_CUES = {
    TemporalCategory.ADMISSION: [
        "on admission", "at admission", "upon admission", "on arrival", "upon arrival",
        "at presentation", "on presentation", "presented", "admitted",
    ],
    TemporalCategory.DISCHARGE: [
        "on discharge", "at discharge", "upon discharge", "at time of discharge",
        "at the time of discharge", "prior to discharge", "discharged",
    ],
    TemporalCategory.PAST: [
        "prior", "previous", "previously", "history of", "h/o", "s/p", "status post",
        "years ago", "months ago", "remote", "in the past", "pmh",
    ],
    TemporalCategory.FUTURE: [
        "will", "planned", "scheduled", "follow-up", "follow up", "to be", "plan to",
        "pending", "next week", "outpatient",
    ],
    TemporalCategory.PRESENT: [
        "currently", "today", "now", "ongoing", "this admission", "during this hospitalization",
        "at this time",
    ],
}

# Field types whose own label is the cue
FIELD_CATEGORIES = {
    FieldType.ADMISSION_DATE: TemporalCategory.ADMISSION,
    FieldType.DISCHARGE_DATE: TemporalCategory.DISCHARGE,
}

REFERENCE_CUES = re.compile(
    r"\b(?:s/p|status post|following|prior|previous(?:ly)?|history of|h/o|POD\s*#?\s*\d+)\b",
    re.IGNORECASE,
)
NEW_EVENT_CUES = re.compile(
    r"\b(?:underwent|performed|taken to the (?:OR|operating room)|was done|placed)\b",
    re.IGNORECASE,
)

POD_PATTERN = re.compile(r"\b(?:POD|post-?op(?:erative)? day)\s*#?\s*(\d{1,3})\b", re.IGNORECASE)
HD_PATTERN = re.compile(r"\b(?:HD|hospital day)\s*#?\s*(\d{1,3})\b", re.IGNORECASE)

_CLAUSE_BOUNDARY = re.compile(r"[;\n]|\.(?!\d)")


# =============================================================================
# Anchors and Resolution State
# =============================================================================

@dataclass(frozen=True)
class TemporalAnchors:
    """Reference dates for positional inference and day offsets."""
    admission: Optional[date] = None
    surgery: Optional[date] = None
    discharge: Optional[date] = None
    ictus: Optional[date] = None

    @classmethod
    def from_result(cls, result: ExtractionResult) -> "TemporalAnchors":
        """
        Anchors from extracted date fields. The earliest surgery date is the
        POD anchor; without one, the earliest dated procedure stands in.
        """
        dates = result.dates()
        surgery = dates.get(FieldType.SURGERY_DATE)
        if surgery is None:
            procedure_dates = [
                f.event_date for f in result.get(FieldType.PROCEDURE)
                if isinstance(f, DatedEvent) and f.event_date
            ]
            surgery = min(procedure_dates) if procedure_dates else None
        return cls(
            admission=dates.get(FieldType.ADMISSION_DATE),
            surgery=surgery,
            discharge=dates.get(FieldType.DISCHARGE_DATE),
            ictus=dates.get(FieldType.ICTUS_DATE),
        )

    @property
    def stay_start(self) -> Optional[date]:
        return self.admission or self.surgery


@dataclass
class TemporalResolution:
    """Per-entity state machine; records every transition."""
    entity: DatedEvent
    state: ResolutionState = ResolutionState.UNCLASSIFIED
    transitions: List[ResolutionState] = field(default_factory=lambda: [ResolutionState.UNCLASSIFIED])
    context: Optional[TemporalContext] = None

    def begin_scan(self) -> None:
        if self.state != ResolutionState.UNCLASSIFIED:
            raise ValueError(f"Cannot scan from state {self.state.value}")
        self._move(ResolutionState.SCANNING)

    def classify(self, context: TemporalContext) -> TemporalContext:
        if self.state != ResolutionState.SCANNING:
            raise ValueError(f"Cannot classify from state {self.state.value}")
        self._move(ResolutionState.CLASSIFIED)
        self.context = replace(context, state=ResolutionState.CLASSIFIED)
        return self.context

    def _move(self, state: ResolutionState) -> None:
        self.state = state
        self.transitions.append(state)


# =============================================================================
# Resolver
# =============================================================================

class TemporalResolver:
    """
    Temporal category resolver for dated events.

    Usage:
        resolver = TemporalResolver()
        resolved = resolver.resolve_all(result, normalized.text)
    """

    def __init__(self, config: Optional[TemporalConfig] = None):
        self.config = config or TemporalConfig()
        self._cues = self._compile_cues()

    def _compile_cues(self) -> List[Tuple[TemporalCategory, re.Pattern, float]]:
        weights = {
            TemporalCategory.ADMISSION: self.config.admission_weight,
            TemporalCategory.DISCHARGE: self.config.discharge_weight,
            TemporalCategory.PAST: self.config.past_weight,
            TemporalCategory.FUTURE: self.config.future_weight,
            TemporalCategory.PRESENT: self.config.present_weight,
        }
        compiled = []
        for category, phrases in CATEGORY_CUES.items():
            for phrase in phrases:
                pattern = re.compile(
                    rf"(?<![\w/-]){re.escape(phrase)}(?![\w/-])", re.IGNORECASE
                )
                compiled.append((category, pattern, weights[category]))
        return compiled

    # =========================================================================
    # Public API
    # =========================================================================

    def resolve(self, entity: DatedEvent, text: str, anchors: TemporalAnchors) -> TemporalContext:
        """Classify one entity. Never raises."""
        resolution = TemporalResolution(entity)
        resolution.begin_scan()
        try:
            return resolution.classify(self._scan(entity, text, anchors))
        except TemporalResolutionFailure as e:
            logger.warning(f"Temporal resolution failed for {entity.field_type.value} '{entity.value}': {e}")
            return resolution.classify(TemporalContext.unknown())

    def resolve_entity(self, entity: DatedEvent, text: str, anchors: TemporalAnchors) -> DatedEvent:
        """Entity with day offsets applied, reference flag set and context attached."""
        updated = entity
        if entity.event_date is None and not entity.field_type.is_date:
            updated = self._apply_day_offset(entity, text, anchors)
        if entity.field_type == FieldType.PROCEDURE:
            updated = replace(updated, is_reference=self._is_reference(updated, text))
        return updated.with_temporal(self.resolve(updated, text, anchors))

    def resolve_all(
        self,
        result: ExtractionResult,
        text: str,
        anchors: Optional[TemporalAnchors] = None,
    ) -> ExtractionResult:
        """Resolve every DatedEvent; other variants pass through unchanged."""
        anchors = anchors or TemporalAnchors.from_result(result)
        logger.debug(
            f"Temporal anchors: admission={anchors.admission}, surgery={anchors.surgery}, "
            f"discharge={anchors.discharge}"
        )

        def _resolve(entity):
            if isinstance(entity, DatedEvent):
                return self.resolve_entity(entity, text, anchors)
            return entity

        return result.map_fields(_resolve)

    # =========================================================================
    # Scanning
    # =========================================================================

    def _scan(self, entity: DatedEvent, text: str, anchors: TemporalAnchors) -> TemporalContext:
        if entity.field_type.is_date and entity.event_date is None:
            # Re-parse to surface the failure reason
            parse_clinical_date(entity.value)

        field_category = FIELD_CATEGORIES.get(entity.field_type)
        if field_category is not None:
            weight = (
                self.config.admission_weight
                if field_category == TemporalCategory.ADMISSION
                else self.config.discharge_weight
            )
            return TemporalContext(field_category, weight, CueType.EXPLICIT, entity.field_type.value)

        cue = self._nearest_cue(entity, text)
        if cue is not None:
            category, weight, phrase = cue
            return TemporalContext(category, weight, CueType.EXPLICIT, phrase)

        return self._positional(entity, anchors)

    def _nearest_cue(self, entity: DatedEvent, text: str) -> Optional[Tuple[TemporalCategory, float, str]]:
        clause_start, clause_end = _clause_bounds(text, entity.span.start, entity.span.end)
        window_start = max(clause_start, entity.span.start - self.config.window_chars)
        window_end = min(clause_end, entity.span.end + self.config.window_chars)

        best = None
        for category, pattern, weight in self._cues:
            for match in pattern.finditer(text, window_start, window_end):
                if match.start() < entity.span.end and match.end() > entity.span.start:
                    continue
                if match.end() <= entity.span.start:
                    distance = entity.span.start - match.end()
                else:
                    distance = match.start() - entity.span.end
                key = (distance, -weight, category.value)
                if best is None or key < best[0]:
                    best = (key, category, weight, match.group())
        if best is None:
            return None
        _, category, weight, phrase = best
        return category, weight, phrase.lower()

    def _positional(self, entity: DatedEvent, anchors: TemporalAnchors) -> TemporalContext:
        event_date = entity.event_date
        anchor = anchors.stay_start
        if event_date is None or (anchor is None and anchors.discharge is None):
            return TemporalContext.unknown()

        if anchor is not None and event_date < anchor:
            return TemporalContext(
                TemporalCategory.PAST, self.config.positional_past, CueType.POSITIONAL,
                f"before {anchor.isoformat()}",
            )
        if anchors.discharge is not None and event_date > anchors.discharge:
            return TemporalContext(
                TemporalCategory.FUTURE, self.config.positional_future, CueType.POSITIONAL,
                f"after {anchors.discharge.isoformat()}",
            )
        if anchor is not None:
            return TemporalContext(
                TemporalCategory.PRESENT, self.config.positional_present, CueType.POSITIONAL,
                "within stay",
            )
        return TemporalContext.unknown()

    # =========================================================================
    # Day Offsets and References
    # =========================================================================

    def _apply_day_offset(self, entity: DatedEvent, text: str, anchors: TemporalAnchors) -> DatedEvent:
        """Resolve "POD N" (from surgery) or "HD N" (from admission) in the entity's clause."""
        clause_start, clause_end = _clause_bounds(text, entity.span.start, entity.span.end)

        pod = _nearest_offset(POD_PATTERN, text, clause_start, clause_end, entity.span.start)
        if pod is not None:
            resolved = anchors.surgery + timedelta(days=pod) if anchors.surgery else None
            return replace(entity, pod=pod, event_date=resolved)

        hospital_day = _nearest_offset(HD_PATTERN, text, clause_start, clause_end, entity.span.start)
        if hospital_day is not None and anchors.admission is not None and hospital_day >= 1:
            return replace(entity, event_date=anchors.admission + timedelta(days=hospital_day - 1))

        return entity

    def _is_reference(self, entity: DatedEvent, text: str) -> bool:
        clause_start, _ = _clause_bounds(text, entity.span.start, entity.span.end)
        before = text[max(clause_start, entity.span.start - self.config.window_chars):entity.span.start]
        if NEW_EVENT_CUES.search(before):
            return False
        return REFERENCE_CUES.search(before) is not None


def _clause_bounds(text: str, start: int, end: int) -> Tuple[int, int]:
    clause_start = 0
    for match in _CLAUSE_BOUNDARY.finditer(text, 0, start):
        clause_start = match.end()
    boundary = _CLAUSE_BOUNDARY.search(text, end)
    clause_end = boundary.start() if boundary else len(text)
    return clause_start, clause_end


def _nearest_offset(pattern: re.Pattern, text: str, start: int, end: int, position: int) -> Optional[int]:
    best = None
    for match in pattern.finditer(text, start, end):
        distance = abs(match.start() - position)
        if best is None or distance < best[0]:
            best = (distance, int(match.group(1)))
    return best[1] if best else None
