"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class MiniBankConfig(BaseSettings):
    """MiniBank configuration"""
    
    # Database configuration
    database_path: str = "minibank.db"  # ":memory:" for throwaway stores
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    
    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"
    password_min_length: int = 6
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr
    
    # Business rules configuration
    account_number_length: int = 10
    default_page_size: int = 10
    max_page_size: int = 100
    
    class Config:
        env_prefix = "MINIBANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = MiniBankConfig()


def get_config() -> MiniBankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> MiniBankConfig:
    """Reload configuration from environment"""
    global config
    config = MiniBankConfig()
    return config
