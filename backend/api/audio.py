"""
Audio API routes.

- POST /api/audio/upload: validate and store a base64 upload
- GET  /api/audio/files: the caller's uploads, newest first
- POST /api/audio/analyze: AI feedback on an uploaded track (quota-gated)
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.api.deps import AppServices, get_current_user, get_services
from backend.models.audio_file import AudioFile
from backend.models.user import User

router = APIRouter(prefix="/audio", tags=["audio"])


class UploadAudioRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    size: int = Field(..., ge=0)
    mime_type: str
    base64_data: str
    conversation_id: Optional[int] = None
    is_reference: bool = False


class UploadAudioResponse(BaseModel):
    audio_file_id: int
    url: str
    file_key: str


class AnalyzeAudioRequest(BaseModel):
    audio_url: str
    conversation_id: int
    user_prompt: Optional[str] = None
    reference_url: Optional[str] = None


class AnalyzeAudioResponse(BaseModel):
    conversation_id: int
    message: str
    success: bool = True


@router.post("/upload", response_model=UploadAudioResponse)
def upload_audio(
    body: UploadAudioRequest,
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    audio = services.audio.upload(
        user.id,
        file_name=body.file_name,
        size=body.size,
        mime_type=body.mime_type,
        base64_data=body.base64_data,
        conversation_id=body.conversation_id,
        is_reference=body.is_reference,
    )
    return {"audio_file_id": audio.id, "url": audio.url, "file_key": audio.file_key}


@router.get("/files", response_model=List[AudioFile])
def list_audio_files(
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    return services.audio.list_files(user.id)


@router.post("/analyze", response_model=AnalyzeAudioResponse)
def analyze_audio(
    body: AnalyzeAudioRequest,
    user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
):
    reply = services.orchestrator.analyze_audio(
        user,
        body.audio_url,
        body.conversation_id,
        user_prompt=body.user_prompt,
        reference_url=body.reference_url,
    )
    return {"conversation_id": reply.conversation_id, "message": reply.message}
