"""Request and response schemas for the PlanTrust API."""
