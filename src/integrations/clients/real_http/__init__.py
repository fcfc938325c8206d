"""
Real HTTP integration clients.

These clients communicate with the hosted backend gateway and the identity
provider over HTTP (httpx).

Important:
- Must implement the same interfaces as the mock clients
- Must return records from src/integrations/contracts/*

Switching:
The selection of mock vs real clients happens in src/integrations/actor_factory.py only.
"""
