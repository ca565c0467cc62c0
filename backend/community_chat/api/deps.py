from functools import lru_cache

from community_chat.services.attachment_service import AttachmentPipeline
from community_chat.services.directory_service import Directory, default_directory
from community_chat.services.storage_service import LocalStorage


@lru_cache
def get_attachment_pipeline() -> AttachmentPipeline:
    return AttachmentPipeline()


@lru_cache
def get_local_storage() -> LocalStorage:
    return LocalStorage()


@lru_cache
def get_directory() -> Directory:
    return default_directory()
