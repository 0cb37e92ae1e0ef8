from pydantic import BaseModel, ConfigDict, Field


class IncomingMessageWebhook(BaseModel):
    """Inbound message delivered by the messaging platform."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    sender: str = Field(..., alias="from", min_length=1, max_length=128)
    message: str = Field(..., max_length=4096)
