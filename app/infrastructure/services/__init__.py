"""Infrastructure services."""

from app.infrastructure.services.action_token_signer import JwtActionTokenSigner

__all__ = [
    "JwtActionTokenSigner",
]
