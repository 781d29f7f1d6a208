"""Configuration package (Facade).

Re-exports the public config types so callers import from a single, stable path:

	from client_provisioner.services.config import ProvisionerConfig

The underlying module layout can change without touching call sites.
"""

from client_provisioner.services.config.provisioner_config import (
	SUPPORTED_REGIONS,
	ProvisionerConfig,
	RetryPolicy,
)

__all__ = ["SUPPORTED_REGIONS", "ProvisionerConfig", "RetryPolicy"]
