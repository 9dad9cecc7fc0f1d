"""Plan generation: collaborator interface, Gemini implementation, validating adapter."""

from plansync.planning.adapter import PlanGeneratorAdapter
from plansync.planning.base import PlanGenerator
from plansync.planning.gemini import GeminiPlanGenerator, extract_json_object

__all__ = [
    "GeminiPlanGenerator",
    "PlanGenerator",
    "PlanGeneratorAdapter",
    "extract_json_object",
]
