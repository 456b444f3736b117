"""Payment processor adapters."""

from typing import Optional

from .base import ProcessorBase, PaymentMethod
from .stripe_processor import StripeProcessor
from .simulator import (
    SimulatorProcessor,
    SimulatorConfig,
    SimulatorScenario,
    SimulatedCharge,
    SimulatedInvoice,
    SimulatedInvoiceItem,
)


def get_processor(provider: str = "stripe", api_key: Optional[str] = None, timeout: float = 30.0) -> ProcessorBase:
    """Factory function to get the payment processor adapter.

    Args:
        provider: Processor name ("stripe" or "simulator").
        api_key: Optional API key for the provider.
        timeout: Per-request timeout in seconds.

    Returns:
        ProcessorBase implementation for the provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    provider = provider.lower()
    if provider == "stripe":
        return StripeProcessor(api_key=api_key, timeout=timeout)
    if provider == "simulator":
        return SimulatorProcessor()
    raise ValueError(f"Unsupported payment processor: {provider}")


__all__ = [
    # Base classes and models
    "ProcessorBase",
    "PaymentMethod",
    # Processors
    "StripeProcessor",
    "SimulatorProcessor",
    "SimulatorConfig",
    "SimulatorScenario",
    "SimulatedCharge",
    "SimulatedInvoice",
    "SimulatedInvoiceItem",
    "get_processor",
]
