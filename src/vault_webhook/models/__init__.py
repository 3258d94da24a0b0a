"""
Models package - Pydantic models for type-safe resource handling.

Defines data models for:
- DatabaseCredentialBinding custom resources
- The Pod fields read during admission
- The AdmissionReview request/response envelope
"""
