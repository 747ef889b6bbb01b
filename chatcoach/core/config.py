"""
Application configuration
"""

import os
from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./chatcoach.db"  # Will be overridden by env var

    # Authentication Configuration
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_days: int = 365
    phone_login_code: str = "1234"  # Fixed verification code until an SMS provider is wired in

    # LLM Configuration (any OpenAI-compatible endpoint)
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1024
    llm_timeout_seconds: float = 60.0

    # Object Storage Configuration (S3-compatible)
    storage_bucket: str = "chatcoach-user-files"
    storage_endpoint_url: Optional[str] = None
    storage_region: str = "us-east-1"
    storage_access_key: Optional[str] = None
    storage_secret_key: Optional[str] = None
    avatar_url_ttl_seconds: int = 7 * 24 * 60 * 60  # SigV4 presigned URLs are capped at 7 days
    file_url_ttl_seconds: int = 3600
    max_upload_mb: int = 10

    # Identifier generator
    idgen_node_id: Optional[int] = None  # Random node id per process when unset

    # Messages
    message_page_size_default: int = 1000
    profile_page_size_default: int = 20

    # Demo data
    demo_template_dir: str = ""  # Optional directory whose <kind>.json overrides the packaged templates

    # Logging Configuration
    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False

settings = Settings()

# Resolve the template override directory once so request handlers are not
# affected by working directory changes
if settings.demo_template_dir and not os.path.isabs(settings.demo_template_dir):
    settings.demo_template_dir = os.path.abspath(settings.demo_template_dir)
