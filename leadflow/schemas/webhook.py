from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

MESSAGES_UPSERT = "messages.upsert"
IGNORED_ADDRESS_SUFFIXES = ("@g.us", "@broadcast")


class EvolutionKey(BaseModel):
    model_config = ConfigDict(extra="ignore")

    remoteJid: Optional[str] = None
    fromMe: bool = False
    id: Optional[str] = None


class EvolutionMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: Optional[EvolutionKey] = None
    pushName: Optional[str] = None
    message: Optional[dict[str, Any]] = None


class EvolutionData(EvolutionMessage):
    messages: Optional[List[EvolutionMessage]] = None


class EvolutionWebhook(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: Optional[str] = None
    instance: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("instance", "instanceName", "instance_name"),
    )
    data: Optional[EvolutionData] = None


class InboundMessage(BaseModel):
    """One text message taken out of a webhook event."""

    address: str
    text: str
    instance: Optional[str] = None
    display_name: Optional[str] = None
    from_operator: bool = False


def extract_text(message: Optional[dict[str, Any]]) -> str:
    if not message:
        return ""
    if isinstance(message.get("conversation"), str):
        return message["conversation"]
    extended = message.get("extendedTextMessage") or {}
    if isinstance(extended.get("text"), str):
        return extended["text"]
    for media_key in ("imageMessage", "videoMessage"):
        caption = (message.get(media_key) or {}).get("caption")
        if isinstance(caption, str):
            return caption
    return ""


def extract_inbound_messages(payload: EvolutionWebhook) -> List[InboundMessage]:
    """Text-bearing messages of a messages.upsert event, in arrival order."""
    if (payload.event or "").lower().replace("_", ".") != MESSAGES_UPSERT or payload.data is None:
        return []

    data = payload.data
    batch_key = data.key or EvolutionKey()
    items: List[EvolutionMessage] = data.messages or [data]
    inbound = []
    for item in items:
        # batch items may omit the key or the name carried at the top of the event
        key = item.key or batch_key
        address = key.remoteJid or batch_key.remoteJid
        text = extract_text(item.message).strip()
        if not address or not text or address.endswith(IGNORED_ADDRESS_SUFFIXES):
            continue
        inbound.append(
            InboundMessage(
                address=address,
                text=text,
                instance=payload.instance,
                display_name=item.pushName or data.pushName,
                from_operator=key.fromMe or batch_key.fromMe,
            )
        )
    return inbound
