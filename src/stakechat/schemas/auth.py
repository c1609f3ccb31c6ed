"""Authentication-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field

MAX_SIGNATURE_LENGTH = 16_384
MAX_MESSAGE_LENGTH = 8_192


class WalletCredentials(BaseModel):
    """Wallet credential fields shared by every authenticated request."""

    wallet_address: str | None = Field(
        None,
        alias="walletAddress",
        max_length=128,
        description="Claimed 0x-prefixed wallet address",
    )
    signature: str | None = Field(
        None,
        max_length=MAX_SIGNATURE_LENGTH,
        description="Hex signature blob; may be wrapped in wallet-specific JSON",
    )
    message: str | None = Field(
        None,
        max_length=MAX_MESSAGE_LENGTH,
        description="Exact text the wallet signed",
    )

    model_config = ConfigDict(populate_by_name=True)


class AuthRequest(WalletCredentials):
    """Request to exchange a wallet signature for a session token."""


class AuthResponse(BaseModel):
    """Session token issued after a successful signature check."""

    address: str = Field(..., description="Authenticated wallet address (lowercase)")
    token: str = Field(..., description="Signed session token")
    staked: bool = Field(..., description="True if the wallet meets the minimum stake")


class ErrorResponse(BaseModel):
    """Structured error body returned for every denial."""

    error: str = Field(..., description="Stable reason code")
