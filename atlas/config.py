# atlas/config.py
import os
from dotenv import load_dotenv

load_dotenv() # Load environment variables from .env file

DEV_ADMIN_SECRET = "dev-secret"

class Settings:
    ADMIN_SECRET: str = os.getenv("ADMIN_SECRET", DEV_ADMIN_SECRET) # Dev default only

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./data/documents.db")

    # Blob storage settings
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "local") # "local" or "s3"
    UPLOADS_DIR: str = os.getenv("UPLOADS_DIR", "uploads")
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")

    S3_BUCKET: str = os.getenv("S3_BUCKET", "atlas-documents")
    S3_REGION: str = os.getenv("S3_REGION", "us-east-1")
    S3_ENDPOINT_URL: str = os.getenv("S3_ENDPOINT_URL") # MinIO, R2, etc.
    S3_PUBLIC_URL: str = os.getenv("S3_PUBLIC_URL")
    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY")

    # Document defaults
    DEFAULT_DOCUMENT_TYPE: str = os.getenv("DEFAULT_DOCUMENT_TYPE", "PDF")

    # HTTP settings
    PUBLIC_DIR: str = os.getenv("PUBLIC_DIR", "public")
    CORS_ORIGINS: list = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    PORT: int = int(os.getenv("PORT", "3000"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()

# Create necessary directories if they don't exist
if settings.DATABASE_URL.startswith("sqlite:///./"):
    os.makedirs(os.path.dirname(settings.DATABASE_URL[len("sqlite:///"):]), exist_ok=True)
if settings.STORAGE_BACKEND == "local":
    os.makedirs(settings.UPLOADS_DIR, exist_ok=True)
