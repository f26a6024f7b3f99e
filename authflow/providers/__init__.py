"""Identity provider port and its Supabase adapter."""

from authflow.providers.identity_provider import (
    IdentityProvider,
    SessionChangeCallback,
    SupabaseIdentityProvider,
    Subscription,
)

__all__ = [
    "IdentityProvider",
    "SessionChangeCallback",
    "Subscription",
    "SupabaseIdentityProvider",
]
