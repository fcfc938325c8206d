"""
Integrations layer.
This package contains all code used to communicate with external systems:
- The hosted backend (forms, profiles, roles, settings, site content, analytics)
- The identity provider that issues caller principals

Key rule:
- Services and API routes MUST NOT call external APIs directly.
- They go through a `BackendActor` obtained from the actor factory.
- We use MOCK clients during development and swap to REAL_HTTP clients when
  BACKEND_API_URL / IDENTITY_PROVIDER_URL are configured.

Switching implementations:
- The selection of mock vs real clients happens in ONE place
  (src/integrations/actor_factory.py, used by src/api/main.py).
"""

from .contracts.blobs import ExternalBlob
from .contracts.interfaces import (
    AppSettings,
    BackendActor,
    BackendCallError,
    BackendUnavailableError,
    CustomerForm,
    InsuranceType,
    ServiceInfo,
    SiteContent,
    Testimonial,
    UserProfile,
    UserRole,
)
from .identity import AuthClient, Identity, IdentityError, IdentityProvider, LoginStatus
from .actor_factory import ActorConfig, ActorFactory, create_actor_with_config

__all__ = [
    # contracts
    "AppSettings", "BackendActor", "BackendCallError", "BackendUnavailableError",
    "CustomerForm", "ExternalBlob", "InsuranceType", "ServiceInfo", "SiteContent",
    "Testimonial", "UserProfile", "UserRole",
    # identity
    "AuthClient", "Identity", "IdentityError", "IdentityProvider", "LoginStatus",
    # actor factory
    "ActorConfig", "ActorFactory", "create_actor_with_config",
]
