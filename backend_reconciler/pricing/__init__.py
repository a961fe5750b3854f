"""Auxiliary token pricing: load-balanced Solana Tracker clients with fallback."""

from backend_reconciler.pricing.load_balancer import ApiLoadBalancer
from backend_reconciler.pricing.service import PricingService
from backend_reconciler.pricing.tracker_client import PriceData, SolanaTrackerApiClient

__all__ = ["ApiLoadBalancer", "PriceData", "PricingService", "SolanaTrackerApiClient"]
