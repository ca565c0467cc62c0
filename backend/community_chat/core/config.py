from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Community Chat"
    ENVIRONMENT: str = "development"
    API_V1_STR: str = "/api/v1"

    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str):
            v = v.strip("[").strip("]").strip('"').strip("'")
            if not v:
                return []
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, list):
            return v
        raise ValueError(v)

    # Database - sqlite+aiosqlite locally, postgresql+asyncpg in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./community_chat.db"

    # Attachments: Supabase Storage first, local disk as fallback
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_BUCKET: str = "community-service-bucket"
    STORAGE_TIMEOUT: float = 30.0
    UPLOAD_DIR: str = "uploads"
    PUBLIC_BASE_URL: str = ""
    MAX_ATTACHMENT_BYTES: int = 10 * 1024 * 1024

    # Resident/staff directory used to rebuild the community group
    DIRECTORY_URL: str = ""
    DIRECTORY_TIMEOUT: float = 10.0
    COMMUNITY_ID: str = "default"
    COMMUNITY_GROUP_NAME: str = "Community"
    # Comma separated; only used when DIRECTORY_URL is empty
    COMMUNITY_MEMBER_IDS: str = ""

    # Message history paging
    DEFAULT_PAGE_SIZE: int = 30
    MAX_PAGE_SIZE: int = 100

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file="chat_config.env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def community_member_ids(self) -> List[str]:
        return [i.strip() for i in self.COMMUNITY_MEMBER_IDS.split(",") if i.strip()]

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_KEY)

settings = Settings()
