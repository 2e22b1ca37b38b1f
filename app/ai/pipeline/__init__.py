"""Pipeline contracts."""

from app.ai.pipeline.contracts import Categorization, GenerationRequest, NutritionInfo, PipelineResult, QualityScore, RecipeDraft, SimilarityResult, StepDraft, StepImageOutcome, StepImageTask

__all__ = ["Categorization", "GenerationRequest", "NutritionInfo", "PipelineResult", "QualityScore", "RecipeDraft", "SimilarityResult", "StepDraft", "StepImageOutcome", "StepImageTask"]
