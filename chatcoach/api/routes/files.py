"""
File upload API endpoints
"""

import re
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.deps.idgen import IdFactory, get_id_generator
from chatcoach.deps.object_storage import ObjectStorage, get_object_storage
from chatcoach.domain.errors import parse_id
from chatcoach.middleware.auth import get_current_user
from chatcoach.models.user import FileUsage, User
from chatcoach.schemas.file import UpdateUsageTypeRequest, UserFileSchema, user_file_to_schema
from chatcoach.services.files import FileService

router = APIRouter()


def get_file_service(
    storage: ObjectStorage = Depends(get_object_storage),
    id_factory: IdFactory = Depends(get_id_generator)
) -> FileService:
    return FileService(storage, id_factory)


@router.post("/files", response_model=UserFileSchema)
def upload_file(
    file: UploadFile = File(...),
    usage_type: str = Form(FileUsage.TEMP_UPLOAD),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service)
):
    """
    Upload a file for the current user

    - **file**: The file content
    - **usage_type**: avatar, chat_image or temp_upload
    """
    content = file.file.read()
    safe_filename = re.sub(r'[^\w\-_\.]', '_', file.filename or 'unknown')
    user_file = service.upload(
        db,
        current_user.id,
        safe_filename,
        content,
        content_type=file.content_type or "",
        usage_type=usage_type,
    )
    return user_file_to_schema(user_file)


@router.get("/files/{file_id}", response_model=UserFileSchema)
def get_file(
    file_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service)
):
    user_file = service.get_file(db, current_user.id, parse_id(file_id, "file_id"))
    return user_file_to_schema(user_file)


@router.put("/files/{file_id}/usage", response_model=UserFileSchema)
def update_file_usage(
    file_id: str,
    data: UpdateUsageTypeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service)
):
    user_file = service.update_usage_type(db, current_user.id, parse_id(file_id, "file_id"), data.usage_type)
    return user_file_to_schema(user_file)
