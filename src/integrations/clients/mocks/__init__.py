"""
Mock integration clients.

These clients return realistic responses without calling any external API.
They are used when:
- No hosted backend / identity provider is configured
- We want to test flows end-to-end without external dependencies

Important:
- Mock clients must follow the SAME interface as real HTTP clients.
- Mock clients return records from src/integrations/contracts/*

Switching to real:
Set BACKEND_MODE=real (or BACKEND_API_URL) and IDENTITY_PROVIDER_URL.
"""
