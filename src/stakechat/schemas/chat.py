"""Chat request and response schemas."""

from typing import Literal

from pydantic import BaseModel, Field

from .auth import WalletCredentials


class ChatTurn(BaseModel):
    """A prior message in the conversation."""

    role: Literal["system", "user", "assistant"]
    content: str = Field(..., max_length=32_768)


class ChatRequest(WalletCredentials):
    """A chat turn, optionally carrying wallet credentials or a session token."""

    text: str = Field(..., min_length=1, max_length=32_768, description="User message")
    history: list[ChatTurn] = Field(default_factory=list, max_length=100)
    token: str | None = Field(None, max_length=4_096, description="Session token")
    feature: Literal["chat", "image"] = Field(
        "chat",
        description="Requested feature; 'image' requires confirmed stake",
    )


class ChatResponse(BaseModel):
    """Assistant reply plus the caller's access state."""

    answer: str
    address: str | None = None
    staked: bool = False
    token: str | None = Field(None, description="Session token issued for this request")
