"""
Message codec.

Execute and query messages travel as externally tagged snake_case JSON:

    {"withdraw": {"secret": "..."}}
    {"cancel": {}}

Unit variants may also arrive as a bare string ("cancel_order"). Instantiate
messages are plain objects without a tag.
"""

import copy
from typing import Annotated, Any, ClassVar, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core import UINT128_MAX
from ..errors import InvalidMessage, UnknownMessage

M = TypeVar("M", bound=BaseModel)

Uint128 = Annotated[int, Field(ge=0, le=UINT128_MAX)]
Timestamp = Annotated[int, Field(ge=0)]


class Msg(BaseModel):
    """Base for tagged messages. Subclasses set TAG."""
    model_config = ConfigDict(extra="forbid")

    TAG: ClassVar[str] = ""

    def to_wire(self) -> Dict[str, Any]:
        return {self.TAG: self.model_dump(mode="json", exclude_none=True)}


def to_wire(msg: Union[BaseModel, Dict[str, Any], str]) -> Any:
    """Wire form of a message model, or a detached copy of a raw message."""
    if isinstance(msg, Msg):
        return msg.to_wire()
    if isinstance(msg, BaseModel):
        return msg.model_dump(mode="json", exclude_none=True)
    return copy.deepcopy(msg)


def parse_model(model: Type[M], raw: Any) -> M:
    """Validate an untagged message (instantiate messages, query responses)."""
    if isinstance(raw, model):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(mode="json")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise InvalidMessage(f"Invalid {model.__name__}: {e.errors()[0]['msg']}") from e


class MessageSet:
    """The tagged messages a contract entry point accepts."""

    def __init__(self, *models: Type[Msg]):
        self._models: Dict[str, Type[Msg]] = {m.TAG: m for m in models}

    @property
    def tags(self):
        return sorted(self._models)

    def parse(self, raw: Any) -> Msg:
        if isinstance(raw, Msg):
            raw = raw.to_wire()
        if isinstance(raw, str):
            tag, body = raw, {}
        elif isinstance(raw, dict) and len(raw) == 1:
            tag, body = next(iter(raw.items()))
        else:
            raise UnknownMessage("Message must have exactly one variant")

        model = self._models.get(tag)
        if model is None:
            raise UnknownMessage(f"Unknown message: {tag}")
        return parse_model(model, body if body is not None else {})

    def get(self, tag: str) -> Optional[Type[Msg]]:
        return self._models.get(tag)
