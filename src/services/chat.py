"""Chat-surface collaborator contract and interaction payloads.

The chat platform delivers text messages and two kinds of interaction
requests: a transaction to sign and a form with buttons. Sending is
awaited, but the user's answer arrives later through the conversation
handler's resume entry point, never as the return value of the send.
"""

from typing import Literal, Protocol, Union

from pydantic import BaseModel, Field


class TransactionRequest(BaseModel):
    """Ask the user to sign a transaction."""

    type: Literal["transaction"] = "transaction"
    id: str
    title: str
    chain_id: int
    to: str
    data: str
    value_wei: int = 0
    signer: str
    recipient: str = Field(..., description="User id the request is addressed to")


class FormButton(BaseModel):
    id: str
    label: str


class FormRequest(BaseModel):
    """Ask the user to pick one of a set of buttons."""

    type: Literal["form"] = "form"
    id: str
    title: str
    components: list[FormButton]
    recipient: str


InteractionPayload = Union[TransactionRequest, FormRequest]


class ChatSurface(Protocol):
    async def send_message(
        self, channel_id: str, text: str, *, conversation_id: str
    ) -> None: ...

    async def send_interaction_request(
        self, channel_id: str, payload: InteractionPayload, *, conversation_id: str
    ) -> None: ...
