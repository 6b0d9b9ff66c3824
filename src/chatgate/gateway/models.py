from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: str
    content: Any = None  # str | list[dict]; passed through untouched

    class Config:
        extra = "allow"


class CompletionRequest(BaseModel):
    model: str
    messages: List[ChatMessage]
    stream: bool = False

    class Config:
        extra = "allow"

    def provider_params(self) -> Dict[str, Any]:
        """Opaque provider-specific parameters (everything but the core fields)."""
        return dict(self.model_extra or {})

    def message_dicts(self) -> List[Dict[str, Any]]:
        return [m.model_dump(exclude_none=False) for m in self.messages]


class ModelDescriptor(BaseModel):
    id: str
    object: str = "model"
    created: int
    owned_by: str


class ModelList(BaseModel):
    object: str = "list"
    data: List[ModelDescriptor] = Field(default_factory=list)


class Usage(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ChoiceMessage(BaseModel):
    role: str = "assistant"
    content: Optional[str] = None


class ChatChoice(BaseModel):
    index: int = 0
    message: ChoiceMessage
    finish_reason: str = "stop"


class CompletionResponse(BaseModel):
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[ChatChoice]
    usage: Optional[Usage] = None

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump()
        if self.usage is None:
            data.pop("usage")
        else:
            data["usage"] = self.usage.model_dump(exclude_none=True)
        return data


class ChunkDelta(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: Optional[str] = None


class CompletionChunk(BaseModel):
    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChunkChoice]
    usage: Optional[Usage] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return any(c.finish_reason is not None for c in self.choices)

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"usage", "error"})
        for choice, source in zip(data["choices"], self.choices):
            choice["delta"] = source.delta.model_dump(exclude_none=True)
        if self.usage is not None:
            data["usage"] = self.usage.model_dump(exclude_none=True)
        if self.error is not None:
            data["error"] = self.error
        return data
