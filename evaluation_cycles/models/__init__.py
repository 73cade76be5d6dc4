from evaluation_cycles.models.evaluation_cycle import EvaluationCycle

__all__ = ["EvaluationCycle"]
