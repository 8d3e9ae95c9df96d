"""
Core configuration management
"""
from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Campaign engine settings"""

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Paths
    log_dir: Path = Path.cwd() / "logs"  # relative to the working directory

    # Logging
    log_level: str = "info"
    log_json: bool = True
    log_to_file: bool = True

    # Target enumeration ("identity=host:port")
    targets: List[str] = []

    # Campaign engine
    max_transaction_code: int = 128
    bind_timeout_ms: int = 5000
    bind_retry_limit: int = 0  # consecutive failed binds tolerated in continuous mode
    transaction_timeout_ms: int = 1000
    inter_trial_delay_ms: int = 5
    inter_round_delay_ms: int = 500
    max_reply_bytes: int = 1024 * 1024

    # Classifier extensions
    crash_fault_kinds: List[str] = []
    benign_fault_kinds: List[str] = []
    report_anomalies: bool = False

    class Config:
        env_prefix = "TXFUZZ_"
        env_file = ".env"


settings = Settings()
