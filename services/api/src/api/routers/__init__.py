"""
API router package for PlanTrust.

Contains the verification, admin and health routers.
"""
