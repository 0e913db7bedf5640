"""Application configuration"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables"""

    # Application
    APP_TITLE: str = "Project Files"
    APP_VERSION: str = "1.0.0"
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", 8000))
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # Object storage: "auto" picks S3 when credentials are present, else local
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "auto").lower()

    # S3 / Wasabi
    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")
    AWS_S3_BUCKET: str = os.getenv("AWS_S3_BUCKET_NAME", "")
    S3_ENDPOINT_URL: str = os.getenv("S3_ENDPOINT_URL", "")

    # Local Storage
    UPLOAD_FOLDER: str = os.getenv("UPLOAD_FOLDER", str(Path("uploads")))

    # Timeouts and lifetimes (seconds)
    STORAGE_TIMEOUT_SECONDS: float = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "30"))
    PRESIGNED_URL_TTL: int = int(os.getenv("PRESIGNED_URL_TTL", "3600"))
    UPLOAD_SESSION_TTL_SECONDS: int = int(os.getenv("UPLOAD_SESSION_TTL_SECONDS", "900"))
    UPLOAD_SWEEP_INTERVAL_SECONDS: int = int(os.getenv("UPLOAD_SWEEP_INTERVAL_SECONDS", "60"))

    # Redis listing cache
    REDIS_HOST: str = os.getenv("REDIS_HOST", "")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    CACHE_TTL: int = int(os.getenv("CACHE_TTL", "600"))

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Default folders created for every project
    SYSTEM_FOLDERS: tuple = ("Documents", "Assets", "Design", "Print")

    @property
    def missing_s3_settings(self) -> list:
        """Names of the S3 variables that are not set"""
        required = {
            "AWS_ACCESS_KEY_ID": self.AWS_ACCESS_KEY_ID,
            "AWS_SECRET_ACCESS_KEY": self.AWS_SECRET_ACCESS_KEY,
            "AWS_S3_BUCKET_NAME": self.AWS_S3_BUCKET,
        }
        return [name for name, value in required.items() if not value]

    @property
    def use_s3(self) -> bool:
        """Check if S3 should back object storage"""
        if self.STORAGE_BACKEND == "local":
            return False
        if self.STORAGE_BACKEND == "s3":
            return True
        return not self.missing_s3_settings

    @property
    def s3_endpoint(self) -> str:
        """Endpoint URL with a scheme, or empty for AWS defaults"""
        endpoint = self.S3_ENDPOINT_URL
        if endpoint and not endpoint.startswith(("http://", "https://")):
            endpoint = f"https://{endpoint}"
        return endpoint


# Global settings instance
settings = Settings()
