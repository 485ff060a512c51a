import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")

    SQLALCHEMY_DATABASE_URI = os.getenv("SQLALCHEMY_DATABASE_URI", "sqlite:///bookshare.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "jwt-super-secret")

    # Mail
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = True
    MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@bookshare.local")

    # Push gateway (empty URL disables push)
    PUSH_GATEWAY_URL = os.getenv("PUSH_GATEWAY_URL", "")
    PUSH_API_KEY = os.getenv("PUSH_API_KEY", "")
    PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))

    # Lending rules
    OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "10"))
    DUE_SOON_DAYS = int(os.getenv("DUE_SOON_DAYS", "2"))
    NOTIFICATION_RETENTION_DAYS = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "30"))

    DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
    MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

    # Scheduler
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "1") == "1"
    SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "UTC")
    OVERDUE_SWEEP_HOUR = int(os.getenv("OVERDUE_SWEEP_HOUR", "9"))
    DUE_SOON_SWEEP_HOUR = int(os.getenv("DUE_SOON_SWEEP_HOUR", "10"))
    CLEANUP_SWEEP_HOUR = int(os.getenv("CLEANUP_SWEEP_HOUR", "2"))
