"""Inbound quest-chat frame."""

from pydantic import BaseModel, ConfigDict, Field, StrictInt


class InboundChatMessage(BaseModel):
    """A chat line sent by a client over the WebSocket."""

    model_config = ConfigDict(populate_by_name=True)

    quest_id: StrictInt = Field(..., alias="questId")
    user_id: StrictInt
    message_text: str = Field(..., min_length=1)
