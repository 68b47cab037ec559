"""
NeuroNote - Test Configuration
==============================

Shared pytest fixtures for all tests.
"""

import asyncio
import sys
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.shared.enums import FieldType
from src.shared.models import (
    DatedEvent,
    DosageRecord,
    ExtractionResult,
    SourceSpan,
    TextField,
)


# =============================================================================
# Clinical Notes
# =============================================================================

SCENARIO_A_NOTE = (
    "Admission date: 03/10/2024\n"
    "Surgery date: 03/11/2024\n"
    "No evidence of vasospasm. Denies headache. Developed fever on POD 3."
)

FULL_NOTE = """CHIEF COMPLAINT: Sudden severe headache.

HISTORY OF PRESENT ILLNESS: 54-year-old female presented with the worst headache of her life. CTA demonstrated an ACoA aneurysm.

Admission date: 03/10/2024
Diagnosis: aneurysmal subarachnoid hemorrhage
Hunt-Hess grade 2, Fisher grade 3.

HOSPITAL COURSE: The patient underwent endovascular coiling on 03/11/2024 without complication. On POD 3 she developed fever, which resolved with acetaminophen. No evidence of vasospasm on TCD. GCS 15 at discharge.

DISCHARGE MEDICATIONS:
Nimodipine 60mg PO q4h
Levetiracetam 500mg PO BID
Acetaminophen 650mg PO PRN

Discharge date: 03/24/2024
Discharge disposition: home with services
Follow-up with neurosurgery clinic in 2 weeks with CTA.
"""

TERSE_NOTE = "pt ok. gonna go home. f/u prn"

SCENARIO_D_NOTE = "Aspirin was continued. Discharged on ASA 81mg daily."


@pytest.fixture
def scenario_a_note() -> str:
    return SCENARIO_A_NOTE


@pytest.fixture
def full_note() -> str:
    return FULL_NOTE


@pytest.fixture
def terse_note() -> str:
    return TERSE_NOTE


# =============================================================================
# Structured Data Builders
# =============================================================================

def text_field(field_type: FieldType, value: str, canonical: str = "", confidence: float = 0.9, start: int = 0):
    return TextField(
        field_type=field_type,
        value=value,
        confidence=confidence,
        span=SourceSpan(start, start + len(value), value),
        canonical=canonical or value.lower(),
        matcher="test",
    )


def dated(field_type: FieldType, value: str, when: Optional[date] = None, canonical: str = "",
          confidence: float = 0.9, start: int = 0, **kwargs):
    return DatedEvent(
        field_type=field_type,
        value=value,
        confidence=confidence,
        span=SourceSpan(start, start + len(value), value),
        canonical=canonical or value.lower(),
        matcher="test",
        event_date=when,
        **kwargs,
    )


def medication(value: str, canonical: str, dose: Optional[str] = None, unit: Optional[str] = None,
               frequency: Optional[str] = None, confidence: float = 0.9, start: int = 0, **kwargs):
    return DosageRecord(
        field_type=FieldType.MEDICATION,
        value=value,
        confidence=confidence,
        span=SourceSpan(start, start + len(value), value),
        canonical=canonical,
        matcher="test",
        dose=dose,
        unit=unit,
        frequency=frequency,
        **kwargs,
    )


def make_result(**fields) -> ExtractionResult:
    """ExtractionResult from keyword field names -> list of fields."""
    return ExtractionResult(fields={FieldType(k): tuple(v) for k, v in fields.items()})


@pytest.fixture
def complete_result() -> ExtractionResult:
    """Structured data for a fully documented SAH admission."""
    return make_result(
        age=[text_field(FieldType.AGE, "54")],
        gender=[text_field(FieldType.GENDER, "female")],
        admission_date=[dated(FieldType.ADMISSION_DATE, "03/10/2024", date(2024, 3, 10))],
        discharge_date=[dated(FieldType.DISCHARGE_DATE, "03/24/2024", date(2024, 3, 24))],
        surgery_date=[dated(FieldType.SURGERY_DATE, "03/11/2024", date(2024, 3, 11))],
        diagnosis=[text_field(FieldType.DIAGNOSIS, "subarachnoid hemorrhage")],
        procedure=[dated(FieldType.PROCEDURE, "coiling", date(2024, 3, 11), canonical="aneurysm coiling")],
        complication=[dated(FieldType.COMPLICATION, "fever", date(2024, 3, 14))],
        medication=[
            medication("Nimodipine 60mg PO q4h", "nimodipine", "60", "mg", "q4h"),
            medication("Levetiracetam 500mg PO BID", "levetiracetam", "500", "mg", "BID", start=30),
        ],
        functional_score=[],
        discharge_disposition=[text_field(FieldType.DISCHARGE_DISPOSITION, "home with services")],
        follow_up=[text_field(FieldType.FOLLOW_UP, "neurosurgery clinic in 2 weeks with CTA")],
    )


@pytest.fixture
def good_narrative() -> Dict[str, str]:
    return {
        "chief_complaint": "54-year-old female admitted with aneurysmal subarachnoid hemorrhage.",
        "hospital_course": (
            "The patient was admitted on 03/10/2024 with a Hunt-Hess grade 2 hemorrhage. "
            "Subsequently she underwent endovascular aneurysm coiling on 03/11/2024 without difficulty. "
            "On postoperative day 3 she developed a fever, which resolved with acetaminophen. "
            "She was discharged on 03/24/2024 in good condition after an otherwise stable course."
        ),
        "procedures": "Endovascular aneurysm coiling on 03/11/2024.",
        "complications": "Fever on postoperative day 3.",
        "discharge_medications": "Nimodipine 60mg every 4 hours\nLevetiracetam 500mg twice daily",
        "discharge_disposition": "Discharged home with services.",
        "follow_up": "Follow up with neurosurgery clinic in 2 weeks with CT angiography.",
    }


# =============================================================================
# Fake Narrative Providers
# =============================================================================

class FakeProvider:
    """Scripted provider: returns a fixed output or raises a fixed error."""

    def __init__(self, name: str, output: Any = None, error: Optional[BaseException] = None,
                 delay: float = 0.0):
        self.name = name
        self.output = output
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> Any:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.output

    @property
    def calls(self) -> int:
        return len(self.prompts)


@pytest.fixture
def fake_provider() -> Callable[..., FakeProvider]:
    return FakeProvider


PROVIDER_JSON = (
    '{"hospital_course": "The patient underwent coiling and recovered well.", '
    '"discharge_disposition": "Home with services."}'
)


@pytest.fixture
def provider_json() -> str:
    return PROVIDER_JSON


# =============================================================================
# Options
# =============================================================================

@pytest.fixture
def options():
    """Default pipeline options."""
    from src.core.config import PipelineOptions
    return PipelineOptions()
