"""Message data models.

Pydantic models for the values that flow through the bridge: decoded frames,
routed keys, and the tagged payloads handed to the dispatcher.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class BaseMessageModel(BaseModel):
    """Base model for all message values.

    Instances are frozen; a decoded frame is shared between the router and
    its dispatch task.
    """

    model_config = ConfigDict(frozen=True)


class RawMessage(BaseMessageModel):
    """A frame split on its first separator."""

    key: str
    value: str


class TextPayload(BaseMessageModel):
    """A frame value that is not JSON, kept verbatim."""

    kind: Literal["text"] = "text"
    value: str


class JsonPayload(BaseMessageModel):
    """A frame value that decoded as JSON."""

    kind: Literal["json"] = "json"
    value: Any = None


Payload = Annotated[TextPayload | JsonPayload, Field(discriminator="kind")]


class Route(BaseMessageModel):
    """The routing path of a prefix-stripped key.

    Attributes:
        plugin: First path segment
        api: Second path segment
        target: Remaining segments joined with "/" (empty when absent)
    """

    plugin: str
    api: str
    target: str = ""

    @property
    def event_name(self) -> str:
        """The dispatcher event name, "plugin/api"."""
        return f"{self.plugin}/{self.api}"


class ParsedCall(BaseMessageModel):
    """A fully decoded inbound call, ready for the dispatcher."""

    event_name: str
    target: str = ""
    payload: Payload
