from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # API
    api_host: str = "0.0.0.0"
    port: int = 5001

    # Remediation mode — False means every mitigation is a suggestion only
    enable_real_fix: bool = False

    # Storage
    data_dir: Path = BASE_DIR / "data"
    logs_dir: Path = BASE_DIR / "logs"

    # Logging
    log_level: str = "INFO"

    # Check thresholds
    ddos_threshold_total: int = 150
    cpu_threshold_percent: int = 80
    disk_threshold_percent: int = 85
    apt_stamp_path: Path = Path("/var/lib/apt/periodic/update-success-stamp")
    update_max_age_seconds: int = 86_400
    firewall_status_command: str = "sudo -n ufw status"

    # Command executor limits
    command_timeout: float = 600.0  # 10 min per command
    max_output_bytes: int = 20 * 1024 * 1024

    # Scanner reports
    trivy_report_path: Path = Path("/tmp/trivy_reports/trivy-last.json")
    grype_report_path: Path = Path("/tmp/grype_reports/grype-last.json")

    # Periodic health runs (0 = only on demand)
    check_interval_seconds: int = 0


settings = Settings()
