# ============================================================================
# JOB PIPELINES
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Core - One pipeline per job kind
# PURPOSE: Generation steps and quality checkpoints for every JobType
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Pipelines

Dispatch is a closed mapping from JobType to a pipeline class
(PIPELINE_CLASSES). Every JobType must have an entry.

Storybook flow (progress in brackets):
    [10] start
    [25] character profile         generation (text), skipped if given
    [40] scene plan                generation (json), skipped if pages given
    [55] plan ready
    per page                       panels generated one by one
        character checkpoint       whole page regenerated on failure
        continuity checkpoint      whole page regenerated on failure
    [55-90] page n/N complete
    [90] saving
    (100 written by mark_completed)

A single panel whose generation fails is kept with has_error=True and no
image; the page continues with the remaining panels. Regenerating a page
is strict: a generation failure there fails the job (retryable).

auto_story writes the story text first, then runs the storybook flow.
scenes produces the scene plan only. cartoonize and image_generation
produce one image, followed by a style-fidelity checkpoint against the
reference image when there is one.
"""

import logging
from dataclasses import dataclass
from statistics import mean
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from core.config import QualityDefaults
from core.contracts import Audience, GateKind, JobType, RegenerationState
from core.errors import ExternalServiceUnavailable, MalformedResponse
from core.logging import log_context
from core.models import (
    AutoStoryPayload,
    CartoonizePayload,
    ImageGenerationPayload,
    PageSpec,
    PanelSpec,
    RegenerationAttempt,
    ScenesPayload,
    StorybookPayload,
    ValidationReport,
)
from quality import (
    CharacterConsistencyGate,
    RegenerationController,
    RegenerationOutcome,
    SequentialContinuityGate,
    StyleFidelityGate,
    enhance_prompt,
)
from services import GenerationClient
from services.generation_client import SERVICE_NAME as GENERATION_SERVICE
from .contracts import JobRun, SERVICE_AI, SERVICE_ANALYSIS

logger = logging.getLogger(__name__)

PANELS_PER_PAGE = 4


# ============================================================================
# SHARED COLLABORATORS
# ============================================================================

@dataclass
class PipelineServices:
    """Collaborators shared by all pipelines, built once at startup."""
    generation: GenerationClient
    character_gate: CharacterConsistencyGate
    sequential_gate: SequentialContinuityGate
    style_gate: StyleFidelityGate
    quality: QualityDefaults

    def controller(self, gate) -> RegenerationController:
        return RegenerationController(gate, max_attempts=self.quality.max_regeneration_attempts)


@dataclass
class PanelResult:
    """One generated panel of a storybook page."""
    panel_number: int
    spec: PanelSpec
    prompt: str
    image_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return self.image_url is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "panel_number": self.panel_number,
            "description": self.spec.description,
            "emotion": self.spec.emotion,
            "dialogue": self.spec.dialogue,
            "image_url": self.image_url,
            "has_error": self.has_error,
            "error": self.error,
        }


def quality_metrics(run: JobRun) -> Dict[str, Any]:
    """
    Summarize the checkpoints of a run.

    Sentinel scores (degraded or skipped checkpoints) are excluded from
    every average.
    """
    measured = [q for q in run.quality if not q["degraded"] and not q["skipped"]]
    averages: Dict[str, Optional[float]] = {}
    for gate in GateKind:
        scores = [q["score"] for q in measured if q["gate"] == gate.value]
        averages[gate.value] = round(mean(scores), 1) if scores else None

    degraded = sum(1 for q in run.quality if q["degraded"])
    return {
        "average_scores": averages,
        "checkpoints": len(run.quality),
        "measured_checkpoints": len(measured),
        "degraded_checkpoints": degraded,
        "skipped_checkpoints": sum(1 for q in run.quality if q["skipped"]),
        "regenerations": sum(q["regenerations"] for q in run.quality),
        "fully_validated": degraded == 0,
        "details": list(run.quality),
    }


# ============================================================================
# BASE PIPELINE
# ============================================================================

class Pipeline:
    """Base class: one subclass per JobType."""

    job_type: JobType
    payload_model: Type[BaseModel]

    def __init__(self, services: PipelineServices):
        self.services = services

    async def run(self, run: JobRun, payload: BaseModel) -> Dict[str, Any]:
        """Execute the job; returns result_data for mark_completed()."""
        raise NotImplementedError

    async def _generate(self, run: JobRun, prompt: str, context: Dict[str, Any]) -> str:
        run.use(SERVICE_AI)
        return await self.services.generation.generate(prompt, context)

    async def _style_checkpoint(
        self,
        run: JobRun,
        reference_url: str,
        current: Callable[[], str],
        regenerate,
        context: Dict[str, Any],
        checkpoint: str,
    ) -> RegenerationOutcome:
        gate = self.services.style_gate
        run.use(SERVICE_ANALYSIS)
        with log_context(checkpoint=checkpoint):
            outcome = await self.services.controller(gate).run(
                validate=lambda attempt: gate.validate(
                    [reference_url, current()],
                    context,
                    job_id=run.job_id,
                    attempt=attempt,
                    checkpoint=checkpoint,
                ),
                regenerate=regenerate,
                job_id=run.job_id,
                checkpoint=checkpoint,
            )
        run.record_checkpoint(checkpoint, outcome)
        return outcome


async def plan_scenes(
    services: PipelineServices,
    run: JobRun,
    story: str,
    audience: Audience,
    character_description: str,
) -> List[PageSpec]:
    """
    Ask the generation service for a page/panel plan.

    Raises:
        MalformedResponse: The plan is not a list of valid pages
    """
    target = audience.target_panels
    prompt = (
        f"Split this story into {target} comic panels across pages of at most "
        f"{PANELS_PER_PAGE} panels, for a {audience.value} audience.\n"
        f"Main character: {character_description or 'as described in the story'}\n\n"
        f"STORY:\n{story}\n\n"
        'Return JSON: {"pages": [{"page_number": 1, "panels": '
        '[{"description": "...", "emotion": "...", "dialogue": "..."}]}]}'
    )
    run.use(SERVICE_AI)
    data = await services.generation.generate_json(prompt, {"audience": audience.value})

    raw_pages = data.get("pages")
    if not isinstance(raw_pages, list) or not raw_pages:
        raise MalformedResponse(GENERATION_SERVICE, "scene plan has no pages")
    try:
        pages = [PageSpec.model_validate(p) for p in raw_pages]
    except ValidationError as e:
        raise MalformedResponse(GENERATION_SERVICE, f"invalid scene plan: {e.errors()[0].get('msg')}") from e

    pages = [p for p in pages if p.panels]
    if not pages:
        raise MalformedResponse(GENERATION_SERVICE, "scene plan has no panels")

    total = sum(len(p.panels) for p in pages)
    if total != target:
        logger.warning(f"Scene plan for job {run.job_id} has {total} panels (target {target})")
    return pages


# ============================================================================
# STORYBOOK
# ============================================================================

class StorybookPipeline(Pipeline):
    """Illustrated storybook with per-page quality checkpoints."""

    job_type = JobType.STORYBOOK
    payload_model = StorybookPayload

    async def run(self, run: JobRun, payload: StorybookPayload) -> Dict[str, Any]:
        await run.report(10, "Starting storybook generation")
        return await self.illustrate(run, payload)

    async def illustrate(self, run: JobRun, payload: StorybookPayload) -> Dict[str, Any]:
        description = await self._character_profile(run, payload)
        await run.report(25, "Character profile ready")

        await run.report(40, "Planning scenes")
        pages = payload.pages or await plan_scenes(
            self.services, run, payload.story, payload.audience, description
        )
        await run.report(55, f"Scene plan ready ({len(pages)} pages)")

        history: List[ValidationReport] = []
        result_pages: List[Dict[str, Any]] = []
        next_panel = 1

        for index, page in enumerate(pages, start=1):
            panels = [
                PanelResult(
                    panel_number=next_panel + i,
                    spec=spec,
                    prompt=self._panel_prompt(payload, description, spec),
                )
                for i, spec in enumerate(page.panels)
            ]
            next_panel += len(panels)

            with log_context(checkpoint=f"page-{page.page_number}"):
                await self._generate_panels(run, payload, panels, strict=False)
                await self._check_page(run, payload, description, page.page_number, panels, history)

            result_pages.append({
                "page_number": page.page_number,
                "panels": [p.to_dict() for p in panels],
            })
            await run.report(55 + int(35 * index / len(pages)), f"Page {index}/{len(pages)} complete")

        await run.report(90, "Saving storybook")
        panel_errors = sum(1 for page in result_pages for p in page["panels"] if p["has_error"])
        return {
            "title": payload.title,
            "audience": payload.audience.value,
            "art_style": payload.art_style,
            "layout_type": payload.layout_type,
            "character_description": description,
            "pages": result_pages,
            "total_panels": next_panel - 1,
            "panels_with_errors": panel_errors,
            "quality_metrics": quality_metrics(run),
        }

    async def _character_profile(self, run: JobRun, payload: StorybookPayload) -> str:
        if payload.character_description:
            return payload.character_description
        if not payload.character_image:
            return f"the main character of '{payload.title}'"
        run.use(SERVICE_AI)
        return await self.services.generation.generate_text(
            "Describe the character in the reference image precisely enough to draw them "
            "identically in every panel: face, hair, body, clothing, colors.",
            {"reference_image": payload.character_image, "art_style": payload.art_style},
        )

    def _panel_prompt(self, payload: StorybookPayload, description: str, spec: PanelSpec) -> str:
        prompt = (
            f"{payload.art_style} illustration, {payload.layout_type} panel for a "
            f"{payload.audience.value} audience.\n"
            f"CHARACTER: {description}\n"
            f"SCENE: {spec.description}\n"
            f"EMOTION: {spec.emotion}"
        )
        if spec.dialogue:
            prompt += f"\nSPEECH BUBBLE: {spec.dialogue}"
        return prompt

    def _panel_context(self, payload: StorybookPayload, panel: PanelResult) -> Dict[str, Any]:
        return {
            "style": payload.art_style,
            "audience": payload.audience.value,
            "reference_image": payload.character_image,
            "panel_number": panel.panel_number,
        }

    async def _generate_panels(
        self,
        run: JobRun,
        payload: StorybookPayload,
        panels: List[PanelResult],
        strict: bool,
        directive: str = "",
    ) -> None:
        for panel in panels:
            prompt = enhance_prompt(panel.prompt, directive)
            try:
                panel.image_url = await self._generate(run, prompt, self._panel_context(payload, panel))
                panel.error = None
            except (ExternalServiceUnavailable, MalformedResponse) as e:
                if strict:
                    raise
                logger.warning(f"Panel {panel.panel_number} of job {run.job_id} not generated: {e}")
                panel.image_url = None
                panel.error = e.message

    async def _check_page(
        self,
        run: JobRun,
        payload: StorybookPayload,
        description: str,
        page_number: int,
        panels: List[PanelResult],
        history: List[ValidationReport],
    ) -> None:
        def good() -> List[PanelResult]:
            return [p for p in panels if not p.has_error]

        if not good():
            logger.warning(f"Page {page_number} of job {run.job_id} has no panels to validate")
            return

        async def regenerate(directive: str, attempt: int) -> None:
            logger.info(f"Regenerating page {page_number} of job {run.job_id} (attempt {attempt})")
            await self._generate_panels(run, payload, panels, strict=True, directive=directive)

        context = {
            "character_description": description,
            "art_style": payload.art_style,
            "reference_image": payload.character_image,
        }

        # Character consistency across the page
        gate = self.services.character_gate
        checkpoint = f"page-{page_number}:character"
        first_panel = good()[0].panel_number
        if gate.should_skip(history, first_panel):
            report = gate.skip_report([p.panel_number for p in good()])
            await gate.persist(run.job_id, 1, report, checkpoint)
            outcome = RegenerationOutcome(
                state=RegenerationState.PASSED,
                final_report=report,
                attempts=[RegenerationAttempt(attempt_number=1, report=report)],
            )
        else:
            def artifacts() -> List[str]:
                refs = [p.image_url for p in good()]
                return [payload.character_image] + refs if payload.character_image else refs

            run.use(SERVICE_ANALYSIS)
            with log_context(checkpoint=checkpoint):
                outcome = await self.services.controller(gate).run(
                    validate=lambda attempt: gate.validate(
                        artifacts(),
                        context,
                        job_id=run.job_id,
                        attempt=attempt,
                        checkpoint=checkpoint,
                        panel_numbers=[p.panel_number for p in good()],
                    ),
                    regenerate=regenerate,
                    job_id=run.job_id,
                    checkpoint=checkpoint,
                )
        run.record_checkpoint(checkpoint, outcome)
        history.extend([outcome.final_report] * len(good()))

        # Panel-to-panel continuity
        if len(good()) < 2:
            return
        sequential = self.services.sequential_gate
        checkpoint = f"page-{page_number}:continuity"
        run.use(SERVICE_ANALYSIS)
        with log_context(checkpoint=checkpoint):
            outcome = await self.services.controller(sequential).run(
                validate=lambda attempt: sequential.validate_page(
                    [p.image_url for p in good()],
                    context,
                    job_id=run.job_id,
                    attempt=attempt,
                    checkpoint=checkpoint,
                    first_panel_number=good()[0].panel_number,
                ),
                regenerate=regenerate,
                job_id=run.job_id,
                checkpoint=checkpoint,
            )
        run.record_checkpoint(checkpoint, outcome)


# ============================================================================
# AUTO STORY
# ============================================================================

class AutoStoryPipeline(Pipeline):
    """Write the story, then illustrate it as a storybook."""

    job_type = JobType.AUTO_STORY
    payload_model = AutoStoryPayload

    def __init__(self, services: PipelineServices):
        super().__init__(services)
        self._storybook = StorybookPipeline(services)

    async def run(self, run: JobRun, payload: AutoStoryPayload) -> Dict[str, Any]:
        await run.report(10, f"Writing {payload.genre} story")
        run.use(SERVICE_AI)
        story = await self.services.generation.generate_text(
            f"Write a {payload.genre} story for a {payload.audience.value} audience "
            f"that fits in {payload.audience.target_panels} comic panels.\n"
            f"Main character: {payload.character_description}",
            {"genre": payload.genre, "audience": payload.audience.value},
        )
        await run.report(20, "Story written")

        storybook = StorybookPayload(
            title=f"{payload.genre.title()} Story",
            story=story,
            character_image=payload.cartoon_image_url,
            character_description=payload.character_description,
            audience=payload.audience,
            art_style=payload.art_style,
            layout_type=payload.layout_type,
        )
        result = await self._storybook.illustrate(run, storybook)
        result["genre"] = payload.genre
        result["story"] = story
        return result


# ============================================================================
# SCENES
# ============================================================================

class ScenesPipeline(Pipeline):
    """Scene plan only; no images, no checkpoints."""

    job_type = JobType.SCENES
    payload_model = ScenesPayload

    async def run(self, run: JobRun, payload: ScenesPayload) -> Dict[str, Any]:
        await run.report(10, "Starting scene generation")
        await run.report(40, "Planning scenes")
        pages = await plan_scenes(
            self.services, run, payload.story, payload.audience, payload.character_description
        )
        await run.report(90, "Saving scenes")
        return {
            "pages": [p.model_dump() for p in pages],
            "audience": payload.audience.value,
            "character_description": payload.character_description,
            "character_image": payload.character_image,
            "total_panels": sum(len(p.panels) for p in pages),
        }


# ============================================================================
# SINGLE IMAGES
# ============================================================================

class CartoonizePipeline(Pipeline):
    """Styled character from a reference photo, checked for fidelity."""

    job_type = JobType.CARTOONIZE
    payload_model = CartoonizePayload

    async def run(self, run: JobRun, payload: CartoonizePayload) -> Dict[str, Any]:
        await run.report(10, "Starting cartoonization")
        prompt = (
            f"Transform the subject of the reference image into a {payload.style} character. "
            f"Keep them recognisable. {payload.character_description}".strip()
        )
        context = {"reference_image": payload.original_image_url, "style": payload.style}
        state = {"url": await self._generate(run, prompt, context)}
        await run.report(50, "Cartoon generated")

        async def regenerate(directive: str, attempt: int) -> None:
            state["url"] = await self._generate(run, enhance_prompt(prompt, directive), context)

        await self._style_checkpoint(
            run,
            payload.original_image_url,
            lambda: state["url"],
            regenerate,
            {"style": payload.style, "character_description": payload.character_description},
            "cartoon:style",
        )
        await run.report(90, "Saving cartoon")
        return {
            "cartoon_url": state["url"],
            "original_url": payload.original_image_url,
            "style": payload.style,
            "quality_metrics": quality_metrics(run),
        }


class ImageGenerationPipeline(Pipeline):
    """One illustration; style checkpoint when a reference image is given."""

    job_type = JobType.IMAGE_GENERATION
    payload_model = ImageGenerationPayload

    async def run(self, run: JobRun, payload: ImageGenerationPayload) -> Dict[str, Any]:
        await run.report(10, "Starting image generation")
        prompt = (
            f"{payload.style} illustration for a {payload.audience.value} audience.\n"
            f"SCENE: {payload.image_prompt}\nEMOTION: {payload.emotion}"
        )
        if payload.character_description:
            prompt += f"\nCHARACTER: {payload.character_description}"
        context = {
            "style": payload.style,
            "audience": payload.audience.value,
            "reference_image": payload.reference_image_url,
        }
        state = {"url": await self._generate(run, prompt, context)}
        await run.report(60, "Image generated")

        if payload.reference_image_url:
            async def regenerate(directive: str, attempt: int) -> None:
                state["url"] = await self._generate(run, enhance_prompt(prompt, directive), context)

            await self._style_checkpoint(
                run,
                payload.reference_image_url,
                lambda: state["url"],
                regenerate,
                {
                    "style": payload.style,
                    "audience": payload.audience.value,
                    "character_description": payload.character_description,
                },
                "image:style",
            )

        await run.report(90, "Saving image")
        return {
            "image_url": state["url"],
            "style": payload.style,
            "quality_metrics": quality_metrics(run),
        }


# ============================================================================
# DISPATCH
# ============================================================================

PIPELINE_CLASSES: Dict[JobType, Type[Pipeline]] = {
    JobType.STORYBOOK: StorybookPipeline,
    JobType.AUTO_STORY: AutoStoryPipeline,
    JobType.SCENES: ScenesPipeline,
    JobType.CARTOONIZE: CartoonizePipeline,
    JobType.IMAGE_GENERATION: ImageGenerationPipeline,
}


def build_pipelines(services: PipelineServices) -> Dict[JobType, Pipeline]:
    """Instantiate one pipeline per job type."""
    missing = set(JobType) - set(PIPELINE_CLASSES)
    if missing:
        raise RuntimeError(f"No pipeline for job types: {sorted(t.value for t in missing)}")
    return {job_type: cls(services) for job_type, cls in PIPELINE_CLASSES.items()}


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "PipelineServices",
    "PanelResult",
    "Pipeline",
    "StorybookPipeline",
    "AutoStoryPipeline",
    "ScenesPipeline",
    "CartoonizePipeline",
    "ImageGenerationPipeline",
    "PIPELINE_CLASSES",
    "build_pipelines",
    "plan_scenes",
    "quality_metrics",
]
