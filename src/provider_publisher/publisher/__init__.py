"""Registry reconciliation for a provider release."""

from provider_publisher.publisher.context import PublishContext
from provider_publisher.publisher.reconciler import (
    PublishReport,
    PublishState,
    Reconciler,
    ReleasePlan,
    plan_release,
)

__all__ = [
    "PublishContext",
    "PublishReport",
    "PublishState",
    "Reconciler",
    "ReleasePlan",
    "plan_release",
]
