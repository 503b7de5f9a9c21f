"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    MANUAL = "manual"


@dataclass
class PaymentResult:
    """Result of a charge."""

    success: bool
    transaction_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class RefundResult:
    """Result of a refund operation."""

    success: bool
    refund_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @abstractmethod
    async def create_payment(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        customer_id: str | None = None,
        metadata: dict | None = None,
    ) -> PaymentResult:
        """Charge a customer.

        Args:
            amount: Amount in smallest currency unit (pence)
            currency: Currency code (gbp)
            reference_id: Internal reference (booking_id)
            description: Charge description
            customer_id: Gateway customer to bill
            metadata: Additional metadata

        Returns:
            PaymentResult with transaction details
        """
        pass

    @abstractmethod
    async def process_refund(
        self,
        transaction_id: str | None,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process a refund.

        Args:
            transaction_id: Original charge to refund against
            amount: Refund amount in smallest currency unit (positive)
            reason: Refund reason

        Returns:
            RefundResult with refund details
        """
        pass
