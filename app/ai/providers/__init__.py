"""Provider interfaces and implementations."""

from app.ai.providers.base import Categorizer, ContentGenerator, ImageProvider, ImageQualityParams, QualityEnhancer, QualityEvaluator

__all__ = ["Categorizer", "ContentGenerator", "ImageProvider", "ImageQualityParams", "QualityEnhancer", "QualityEvaluator"]
