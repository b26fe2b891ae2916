"""NAT rule set, privileged helper and coordinator."""

from wifihotspot.nat.coordinator import NatCheck, NatCoordinator  # noqa: F401
from wifihotspot.nat.rules import NatRuleSet  # noqa: F401
