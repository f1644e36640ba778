"""Learners: turn developer activity into knowledge nodes."""

from .base import LearnEvent, Learner, NodeParams
from .convention import ConventionLearner
from .coordinator import LearnerCoordinator, default_learners
from .correction import CorrectionLearner
from .pattern import PatternLearner

__all__ = [
    "LearnEvent",
    "Learner",
    "NodeParams",
    "ConventionLearner",
    "CorrectionLearner",
    "PatternLearner",
    "LearnerCoordinator",
    "default_learners",
]
