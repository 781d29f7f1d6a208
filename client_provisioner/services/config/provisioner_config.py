from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import ClassVar, Optional

SUPPORTED_REGIONS: frozenset[str] = frozenset(
    {
        "us-east-1",
        "us-east-2",
        "us-west-1",
        "us-west-2",
        "eu-west-1",
        "ap-southeast-1",
    }
)

_ENVIRONMENT_PATTERN = re.compile(r"^[a-z0-9]{1,16}$")
_ACCOUNT_ID_PATTERN = re.compile(r"^[0-9]{12}$")


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval, fixed-count polling policy used for propagation waits."""

    max_attempts: int = 10
    interval_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")

    @staticmethod
    def from_env(*, prefix: str, default_attempts: int, default_interval: float) -> "RetryPolicy":
        return RetryPolicy(
            max_attempts=_int_env(f"{prefix}_MAX_ATTEMPTS", default_attempts),
            interval_seconds=_float_env(f"{prefix}_INTERVAL_SECONDS", default_interval),
        )


@dataclass(frozen=True)
class ProvisionerConfig:
    """Runtime configuration for client resource provisioning.

    `environment` is embedded in every resource name, so it is restricted to
    lowercase alphanumerics (no hyphens) to keep derived names unambiguous.
    """

    account_id: str
    environment: str = "dev"
    region_name: str = "us-east-1"
    endpoint_url: Optional[str] = None
    bucket_ready: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=10, interval_seconds=2.0))
    role_ready: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=10, interval_seconds=5.0))
    provisioning_timeout_seconds: Optional[float] = None
    lambda_runtime: str = "python3.12"

    _DEFAULT_REGION: ClassVar[str] = "us-east-1"

    def __post_init__(self) -> None:
        if not _ACCOUNT_ID_PATTERN.match(self.account_id):
            raise ValueError("AWS_ACCOUNT_ID must be a 12-digit account id")
        if not _ENVIRONMENT_PATTERN.match(self.environment):
            raise ValueError(
                f"Invalid environment {self.environment!r}; use 1-16 lowercase letters or digits"
            )
        if self.region_name not in SUPPORTED_REGIONS:
            raise ValueError(f"Invalid AWS region: {self.region_name}")
        if self.provisioning_timeout_seconds is not None and self.provisioning_timeout_seconds <= 0:
            raise ValueError("PROVISIONING_TIMEOUT_SECONDS must be > 0")

    @staticmethod
    def from_env() -> "ProvisionerConfig":
        account_id = (os.getenv("AWS_ACCOUNT_ID") or "").strip()
        if not account_id:
            raise ValueError("Missing required environment variable: AWS_ACCOUNT_ID")

        environment = os.getenv("ENVIRONMENT") or os.getenv("APP_ENV") or "dev"
        region_name = (
            os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or ProvisionerConfig._DEFAULT_REGION
        )

        timeout_raw = os.getenv("PROVISIONING_TIMEOUT_SECONDS")
        timeout_seconds: Optional[float] = None
        if timeout_raw:
            timeout_seconds = _float_env("PROVISIONING_TIMEOUT_SECONDS", 0.0)

        return ProvisionerConfig(
            account_id=account_id,
            environment=environment.strip().lower(),
            region_name=region_name.strip(),
            endpoint_url=os.getenv("AWS_ENDPOINT_URL") or None,
            bucket_ready=RetryPolicy.from_env(prefix="BUCKET_READY", default_attempts=10, default_interval=2.0),
            role_ready=RetryPolicy.from_env(prefix="ROLE_READY", default_attempts=10, default_interval=5.0),
            provisioning_timeout_seconds=timeout_seconds,
            lambda_runtime=os.getenv("LAMBDA_RUNTIME", "python3.12"),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}; must be an integer") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}; must be a number") from exc
