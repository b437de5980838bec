"""Identity resolution and interactive candidate selection."""

from chatdesk.identity.resolver import IdentityResolver, ResolutionResult

__all__ = ["IdentityResolver", "ResolutionResult"]
