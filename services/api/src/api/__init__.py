"""
PlanTrust REST API Gateway.

FastAPI-based HTTP server exposing crowd verification submission, voting,
the provider-plan trust views, and the admin maintenance endpoints.
"""
