from pydantic import BaseModel, Field
from typing import List, Optional


class CommandSpec(BaseModel):
    keyword: str
    handler: Optional[str] = None
    requires_access: bool = False
    is_ai: bool = False
    bare: bool = False
    usage: Optional[str] = None


class DocumentRef(BaseModel):
    id: str
    name: str
    mime_type: str = "text/plain"
    path: Optional[str] = None
    in_workspace: bool = False


class ImagePart(BaseModel):
    mime_type: str
    data: str  # base64


class ResolveRequest(BaseModel):
    text: str = Field(..., min_length=1)
    context: str = ""


class AssistantRequest(BaseModel):
    text: str = Field(..., min_length=1)
    context: str = ""
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    images: List[ImagePart] = Field(default_factory=list)


class SelectRequest(BaseModel):
    session_id: str
    candidate_id: str = Field(..., min_length=1)


class AssistantReply(BaseModel):
    action: str  # "command" | "local" | "service" | "ai" | "error"
    success: bool
    reply: str
    keyword: Optional[str] = None
    provider: Optional[str] = None
    candidates: Optional[List[DocumentRef]] = None
    container_id: Optional[str] = None
    session_id: Optional[str] = None
    duration_ms: Optional[float] = None
