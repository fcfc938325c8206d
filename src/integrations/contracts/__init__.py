"""
Contracts (data models).

This folder defines the records and the actor interface shared with the hosted
backend:
- Customer forms, user profiles, app settings and site content
- The `BackendActor` method set
- Blob references for uploaded files

Why this exists:
- Ensures consistent data structures across mock and real clients
- Prevents "guessing" payload formats in multiple places

Both mock and real HTTP clients should use these contracts.
"""
