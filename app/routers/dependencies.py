from fastapi import Request

from app.services.notifications.email_channel import DeliveryChannel
from app.services.notifications.sweep_scheduler import SweepScheduler


def get_delivery_channel(request: Request) -> DeliveryChannel:
    """Delivery channel created at startup (see app.main.lifespan)."""
    return request.app.state.delivery_channel


def get_sweep_scheduler(request: Request) -> SweepScheduler:
    """Process-wide sweep scheduler created at startup."""
    return request.app.state.sweep_scheduler
