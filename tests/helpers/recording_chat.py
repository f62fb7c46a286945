"""ChatSurface that records everything it is asked to send."""

from dataclasses import dataclass

from src.services.chat import FormRequest, InteractionPayload, TransactionRequest


@dataclass
class SentMessage:
    channel_id: str
    text: str
    conversation_id: str


@dataclass
class SentRequest:
    channel_id: str
    payload: InteractionPayload
    conversation_id: str


class RecordingChat:
    def __init__(self) -> None:
        self.messages: list[SentMessage] = []
        self.requests: list[SentRequest] = []

    async def send_message(self, channel_id: str, text: str, *, conversation_id: str) -> None:
        self.messages.append(SentMessage(channel_id, text, conversation_id))

    async def send_interaction_request(
        self, channel_id: str, payload: InteractionPayload, *, conversation_id: str
    ) -> None:
        self.requests.append(SentRequest(channel_id, payload, conversation_id))

    @property
    def texts(self) -> list[str]:
        return [m.text for m in self.messages]

    @property
    def last_text(self) -> str | None:
        return self.messages[-1].text if self.messages else None

    @property
    def last_payload(self) -> InteractionPayload | None:
        return self.requests[-1].payload if self.requests else None

    @property
    def transactions(self) -> list[TransactionRequest]:
        return [r.payload for r in self.requests if isinstance(r.payload, TransactionRequest)]

    @property
    def forms(self) -> list[FormRequest]:
        return [r.payload for r in self.requests if isinstance(r.payload, FormRequest)]
