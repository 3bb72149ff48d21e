from typing import Optional

# Placeholder addresses assigned to accounts created without a real mailbox
PLACEHOLDER_EMAIL = "unknown@example.com"
PLACEHOLDER_DOMAIN_MARKERS = ("discord.local", "@discord")


def is_deliverable_email(address: Optional[str]) -> bool:
    """Whether an address can receive notification email."""
    if not address or "@" not in address:
        return False
    if any(marker in address for marker in PLACEHOLDER_DOMAIN_MARKERS):
        return False
    return address != PLACEHOLDER_EMAIL
