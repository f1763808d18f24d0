"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LuckyPayConfig(BaseSettings):
    """LuckyPay configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///luckypay.db"  # or memory:// for an in-memory store
    auto_migrate: bool = True
    
    # Dashboard configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8893
    cors_origins: str = "*"  # Comma separated
    
    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"
    password_min_length: int = 6
    session_cookie_name: str = "luckypay_session"
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Policy options
    restrict_audit_inserts: bool = False  # True removes the open audit insert policy
    single_pending_verification: bool = False  # True rejects a second pending verification payment
    
    class Config:
        env_prefix = "LUCKYPAY_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LuckyPayConfig()


def get_config() -> LuckyPayConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LuckyPayConfig:
    """Reload configuration from environment"""
    global config
    config = LuckyPayConfig()
    return config
