"""
Configuration module for the task pool engine and its Lambda handlers.
Loads all environment variables needed by the platform.
"""
import os


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # DynamoDB Tables
    GROUPS_TABLE = os.environ.get('GROUPS_TABLE', '')
    SLOTS_TABLE = os.environ.get('SLOTS_TABLE', '')
    TIMELINE_TABLE = os.environ.get('TIMELINE_TABLE', '')

    # Storage call limits (seconds); a timeout surfaces as StorageUnavailable
    STORAGE_CONNECT_TIMEOUT = float(os.environ.get('STORAGE_CONNECT_TIMEOUT', '2'))
    STORAGE_READ_TIMEOUT = float(os.environ.get('STORAGE_READ_TIMEOUT', '5'))
    STORAGE_MAX_ATTEMPTS = int(os.environ.get('STORAGE_MAX_ATTEMPTS', '2'))

    # Business time: user-supplied local timestamps are read at this fixed offset
    BUSINESS_UTC_OFFSET_MINUTES = int(os.environ.get('BUSINESS_UTC_OFFSET_MINUTES', '480'))

    # Task groups
    DEFAULT_CURRENCY = os.environ.get('DEFAULT_CURRENCY', 'USDT')
    # Group creation is one transaction: 1 group + 2 items per slot must stay <= 100
    MAX_SLOT_CAPACITY = int(os.environ.get('MAX_SLOT_CAPACITY', '49'))

    # Optimistic concurrency
    CLAIM_MAX_RETRIES = int(os.environ.get('CLAIM_MAX_RETRIES', '5'))
    TIMELINE_APPEND_RETRIES = int(os.environ.get('TIMELINE_APPEND_RETRIES', '3'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


config = Config()
