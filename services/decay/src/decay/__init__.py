"""PlanTrust Confidence Decay Job."""

from decay.job import ConfidenceDecayJob, DecayStats

__all__ = ["ConfidenceDecayJob", "DecayStats"]
