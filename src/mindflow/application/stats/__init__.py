# Application Stats Package
from .metrics_calculator import ProgressCalculator, VocabularyProgress
from .service import LearningStatsAggregator

__all__ = ["ProgressCalculator", "VocabularyProgress", "LearningStatsAggregator"]
