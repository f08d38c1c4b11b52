"""Device Data Providers for the recovery engine.

Each provider implements the DeviceDataProvider ABC: time-bounded queries
returning canonical HealthMetric / SleepInterval / WorkoutSession records.

Available providers:
    AppleHealthProvider — Apple HealthKit samples uploaded from the device
    GoogleFitProvider   — Google Fit REST API
"""

from src.recovery.adapters.apple_health import AppleHealthProvider, HealthKitExport
from src.recovery.adapters.google_fit import GoogleFitProvider

__all__ = [
    "AppleHealthProvider",
    "GoogleFitProvider",
    "HealthKitExport",
]

# Registry: provider_type → provider class
PROVIDER_REGISTRY: dict[str, type] = {
    "appleHealth": AppleHealthProvider,
    "googleFit": GoogleFitProvider,
}


def provider_types() -> list[str]:
    return list(PROVIDER_REGISTRY)


def get_provider_class(provider_type: str) -> "type":
    """Return the provider class for a provider slug.

    Args:
        provider_type: e.g. 'appleHealth', 'googleFit'

    Raises:
        KeyError: If the provider_type is not registered.
    """
    if provider_type not in PROVIDER_REGISTRY:
        raise KeyError(
            f"No provider registered for '{provider_type}'. "
            f"Available: {list(PROVIDER_REGISTRY)}"
        )
    return PROVIDER_REGISTRY[provider_type]
