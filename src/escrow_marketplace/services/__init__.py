"""Application services — use case orchestration."""

from escrow_marketplace.services.billing_service import BillingService
from escrow_marketplace.services.concierge_service import ConciergeService
from escrow_marketplace.services.config_service import ConfigService
from escrow_marketplace.services.deposit_service import DepositService
from escrow_marketplace.services.dispute_service import DisputeService
from escrow_marketplace.services.escrow_service import EscrowService
from escrow_marketplace.services.milestone_service import MilestoneService
from escrow_marketplace.services.reliability_service import ReliabilityService
from escrow_marketplace.services.sweeps import SweepService

__all__ = [
    "BillingService",
    "ConciergeService",
    "ConfigService",
    "DepositService",
    "DisputeService",
    "EscrowService",
    "MilestoneService",
    "ReliabilityService",
    "SweepService",
]
