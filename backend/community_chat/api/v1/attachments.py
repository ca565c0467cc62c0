from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse

from community_chat.api import deps
from community_chat.schemas.chat import AttachmentResponse
from community_chat.services.attachment_service import AttachmentPipeline, guess_mime
from community_chat.services.storage_service import LocalStorage

router = APIRouter()


@router.post("/attachments", response_model=AttachmentResponse)
async def upload_attachment(
    file: UploadFile = File(...),
    pipeline: AttachmentPipeline = Depends(deps.get_attachment_pipeline),
):
    """
    Upload a chat attachment. The returned descriptor goes into the `media` field of a message.
    """
    mime_type = file.content_type or "application/octet-stream"
    if file.size is not None:
        # Reject on the declared size before buffering the body
        pipeline.validate(mime_type, file.size)

    content = await file.read()
    attachment = await pipeline.upload(
        content,
        mime_type=mime_type,
        original_name=file.filename or "",
        size_bytes=file.size or len(content),
    )
    return AttachmentResponse(attachment=attachment)


@router.get("/files/{file_name}")
async def get_local_file(
    file_name: str,
    storage: LocalStorage = Depends(deps.get_local_storage),
):
    """
    Serve attachments that landed on local disk because primary storage was unavailable.
    """
    try:
        path = storage.resolve(file_name)
    except ValueError:
        raise HTTPException(status_code=404, detail="File not found")

    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(path, media_type=guess_mime(file_name), filename=file_name)
