import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "teachngrow-dev-secret")
    JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key")
    JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "120"))

    # MongoDB Configuration
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/teachngrow")

    # Your React app's URLs
    CORS_ORIGINS = [
        origin.strip().rstrip("/")
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080",
        ).split(",")
        if origin.strip()
    ]

    # Mail
    EMAIL_ADDRESS = os.getenv("EMAIL_ADDRESS")
    EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
    SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
    MAIL_SUPPRESS_SEND = _env_flag("MAIL_SUPPRESS_SEND")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")

    # Upload configuration
    MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "10"))
    MAX_CONTENT_LENGTH = MAX_UPLOAD_MB * 1024 * 1024
    ALLOWED_EXTENSIONS = {"pdf", "doc", "docx"}

    SCHEDULER_ENABLED = _env_flag("SCHEDULER_ENABLED", "true")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    TESTING = False


class TestingConfig(Config):
    TESTING = True
    MONGO_URI = "mongodb://localhost:27017/teachngrow_test"
    JWT_SECRET = "test-jwt-secret-key-for-testing-only"
    MAIL_SUPPRESS_SEND = True
    SCHEDULER_ENABLED = False
    MAX_UPLOAD_MB = 1
    MAX_CONTENT_LENGTH = 1024 * 1024
