from __future__ import annotations

from slidegen.schemas import PipelineStage


def build_stage_plan(*, with_image: bool) -> list[PipelineStage]:
    """Stages for one slide, in execution order."""
    stages = [PipelineStage.CONTENT_GENERATION, PipelineStage.LAYOUT_REFINEMENT]
    if with_image:
        stages.append(PipelineStage.IMAGE_PROMPT_GENERATION)
    stages.append(PipelineStage.FINAL_REFINEMENT)
    return stages


def build_batch_stage_plan() -> list[PipelineStage]:
    """Per-slide stages in batch mode; image prompts are handled for the whole deck."""
    return [PipelineStage.CONTENT_GENERATION, PipelineStage.LAYOUT_REFINEMENT]
