from pydantic_settings import BaseSettings
from typing import List, Any
import json


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


def parse_mime_types(v: Any) -> List[str]:
    """Parse allowed MIME types from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [mime.strip() for mime in v.split(',') if mime.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "Student Information Management System"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str
    DB_ECHO: bool = False

    # ==========================================
    # Authentication
    # ==========================================
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    BCRYPT_ROUNDS: int = 12  # 4 for tests, 12 for prod
    AUTH_CODE_EXPIRE_MINUTES: int = 60  # signup confirmation / password recovery codes
    REQUIRE_EMAIL_CONFIRMATION: bool = True
    SESSION_COOKIE_NAME: str = "sims-access-token"
    REFRESH_COOKIE_NAME: str = "sims-refresh-token"
    SESSION_COOKIE_SECURE: bool = False

    # Development only: disables the role route guard for local UI iteration.
    # Refused at startup when ENVIRONMENT=production.
    DEV_BYPASS_AUTH: bool = False

    # ==========================================
    # File Host (Cloudinary)
    # ==========================================
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_UPLOAD_PRESET: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    CLOUDINARY_API_BASE_URL: str = "https://api.cloudinary.com/v1_1"
    FILE_HOST_TIMEOUT: float = 60.0  # seconds
    UPLOAD_FOLDER: str = "student-documents"

    # ==========================================
    # File Upload
    # ==========================================
    MAX_UPLOAD_SIZE: int = 10485760  # 10MB
    ALLOWED_MIME_TYPES_STR: str = (
        "application/pdf,"
        "application/msword,"
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document,"
        "text/plain,"
        "image/jpeg,"
        "image/png,"
        "image/gif,"
        "application/zip,"
        "application/x-zip-compressed"
    )

    @property
    def ALLOWED_MIME_TYPES(self) -> List[str]:
        """Parse allowed MIME types from comma-separated string"""
        return parse_mime_types(self.ALLOWED_MIME_TYPES_STR)

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Rate Limiting
    # ==========================================
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_PER_MINUTE: int = 60

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings

    @property
    def file_host_configured(self) -> bool:
        """Unsigned uploads need a cloud name and an upload preset"""
        return bool(self.CLOUDINARY_CLOUD_NAME and self.CLOUDINARY_UPLOAD_PRESET)

    @property
    def file_host_signing_configured(self) -> bool:
        """Signed calls (destroy) need the API key pair"""
        return bool(self.CLOUDINARY_API_KEY and self.CLOUDINARY_API_SECRET)

    def is_dev_mode(self) -> bool:
        """Check if running in development mode"""
        return self.ENVIRONMENT == "development"

    def auth_bypass_active(self) -> bool:
        """The bypass flag only takes effect in development"""
        return self.DEV_BYPASS_AUTH and self.is_dev_mode()


# Create settings instance
settings = Settings()
