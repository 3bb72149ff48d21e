import pytest

from app.services.notifications.recipients import is_deliverable_email


@pytest.mark.parametrize(
    "address",
    ["ada@example.com", "grace.hopper@navy.mil", "ops@example.org"],
)
def test_real_addresses_are_deliverable(address):
    assert is_deliverable_email(address) is True


@pytest.mark.parametrize(
    "address",
    [
        None,
        "",
        "not-an-email",
        "unknown@example.com",
        "12345@discord.local",
        "player@discord",
        "someone@discordapp.dev",
    ],
)
def test_missing_and_placeholder_addresses_are_not_deliverable(address):
    assert is_deliverable_email(address) is False
