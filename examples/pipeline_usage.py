#!/usr/bin/env python3
"""
NeuroNote Pipeline - Usage Examples
===================================

This script demonstrates the different ways to use the note pipeline.
"""

import asyncio
import os

SAMPLE_NOTE = """CHIEF COMPLAINT: Sudden severe headache.

Admission date: 03/10/2024
Diagnosis: aneurysmal subarachnoid hemorrhage
Hunt-Hess grade 2, Fisher grade 3.

HOSPITAL COURSE: The patient underwent endovascular coiling on 03/11/2024.
On POD 3 she developed fever. No evidence of vasospasm on TCD.

DISCHARGE MEDICATIONS:
Nimodipine 60mg PO q4h
Levetiracetam 500mg PO BID

Discharge date: 03/24/2024
Discharge disposition: home with services
"""


def example_extraction_only():
    """Run the synchronous stages and inspect the structured fields."""
    print("\n" + "=" * 60)
    print("EXAMPLE 1: Extraction Only")
    print("=" * 60)

    from src.core.pipeline import NotePipeline

    pipeline = NotePipeline()
    result = pipeline.process(SAMPLE_NOTE)

    print(f"Source quality: {result.assessment.grade.value} ({result.assessment.score:.2f})")
    for field_type, values in result.extracted.fields.items():
        for item in values:
            print(f"  {field_type.value:24s} {item.value!r:40s} conf={item.confidence:.2f}")
    print(f"Negated: {[n.value for n in result.negated]}")
    print(f"Timings (ms): { {k: round(v, 1) for k, v in result.timings.items()} }")

    return result


async def example_full_run_template():
    """Extraction, template narrative and quality report (no API key needed)."""
    print("\n" + "=" * 60)
    print("EXAMPLE 2: Full Run with Template Narrative")
    print("=" * 60)

    from src.core.pipeline import NotePipeline

    run = await NotePipeline().run(SAMPLE_NOTE)

    print(run.narrative.text)
    print(f"\nOverall: {run.report.overall.percentage}% ({run.report.overall.rating})")
    for rec in run.report.recommendations:
        print(f"  [{rec.priority}] {rec.dimension.value}: {rec.action}")

    return run


async def example_with_anthropic():
    """Use Claude for the narrative, falling back to the template."""
    print("\n" + "=" * 60)
    print("EXAMPLE 3: Anthropic Narrative Provider")
    print("=" * 60)

    from src.core.config import PipelineOptions
    from src.core.pipeline import NotePipeline
    from src.narrative import AnthropicNarrativeProvider, ProviderChain

    options = PipelineOptions.from_env()
    chain = ProviderChain.from_config(
        [AnthropicNarrativeProvider(api_key=os.getenv("ANTHROPIC_API_KEY"), config=options.narrative)],
        options.narrative,
    )
    pipeline = NotePipeline(options, narrative_chain=chain)

    run = await pipeline.run(SAMPLE_NOTE)

    print(f"Narrative source: {run.narrative.source}")
    print(f"Circuit health: {chain.health()}")

    return run


async def example_overrides():
    """Apply clinician corrections before scoring."""
    print("\n" + "=" * 60)
    print("EXAMPLE 4: User Overrides")
    print("=" * 60)

    from src.core.pipeline import NotePipeline

    run = await NotePipeline().run(
        SAMPLE_NOTE,
        overrides={"discharge_disposition": "acute rehabilitation facility"},
    )

    from src.shared.enums import FieldType

    disposition = run.result.extracted.first(FieldType.DISCHARGE_DISPOSITION)
    print(f"Disposition: {disposition.value} (matcher={disposition.matcher}, conf={disposition.confidence})")

    return run


async def example_batch_processing():
    """Process several notes concurrently."""
    print("\n" + "=" * 60)
    print("EXAMPLE 5: Batch Processing")
    print("=" * 60)

    from src.core.pipeline import NotePipeline

    notes = [SAMPLE_NOTE, "pt ok. gonna go home. f/u prn", "Aspirin was continued. Discharged on ASA 81mg daily."]

    runs = await NotePipeline().run_many(notes, concurrency=2)

    for index, run in enumerate(runs):
        print(f"  Note {index + 1}: {run.report.overall.percentage}% ({run.report.overall.rating})")

    return runs


async def main():
    """Run examples (comment out ones you don't want to run)."""
    from src.core.logging_config import configure_logging

    configure_logging(json_output=False, log_level="WARNING")

    print("NeuroNote Pipeline Examples")
    print("=" * 60)

    example_extraction_only()
    await example_full_run_template()
    # await example_with_anthropic()
    # await example_overrides()
    # await example_batch_processing()

    print("\nQuick start:")
    print("  from src.core.pipeline import NotePipeline")
    print("  run = await NotePipeline().run(note_text)")
    print("  print(run.report.overall.percentage)")


if __name__ == "__main__":
    asyncio.run(main())
