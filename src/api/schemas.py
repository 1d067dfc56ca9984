from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TranscribeResponse(CamelModel):
    text: str
    duration_ms: int = 0


class JarvisRequest(CamelModel):
    message: str = Field(min_length=1)
    session_id: str = Field(min_length=1)


class JarvisResponse(CamelModel):
    text: str
    audio_url: Optional[str] = None


class TurnResponse(CamelModel):
    id: str
    role: str
    text: str
    audio_url: Optional[str] = None
    created_at: str

