import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


def _split_csv(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    """Runtime configuration, passed explicitly to whatever needs it."""
    database_path: str = "campus.db"
    upload_dir: str = "uploads"
    dify_api_url: str = "https://api.dify.ai/v1"
    dify_api_key: str = ""
    dify_dataset_api_key: str = ""
    dify_dataset_id: str = ""
    dify_timeout: float = 60.0
    admin_emails: list[str] = []
    cors_origins: list[str] = ["http://localhost:3000"]

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        defaults = cls()
        return cls(
            database_path=os.getenv("DATABASE_PATH", defaults.database_path),
            upload_dir=os.getenv("UPLOAD_DIR", defaults.upload_dir),
            dify_api_url=os.getenv("DIFY_API_URL", defaults.dify_api_url),
            dify_api_key=os.getenv("DIFY_API_KEY", ""),
            dify_dataset_api_key=os.getenv("DIFY_DATASET_API_KEY", ""),
            dify_dataset_id=os.getenv("DIFY_DATASET_ID", ""),
            dify_timeout=float(os.getenv("DIFY_TIMEOUT", defaults.dify_timeout)),
            admin_emails=[e.lower() for e in _split_csv(os.getenv("ADMIN_EMAILS"))],
            cors_origins=_split_csv(os.getenv("CORS_ORIGINS")) or defaults.cors_origins,
        )
