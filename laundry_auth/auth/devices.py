"""Device Registry: recently used device fingerprints per account."""

from collections.abc import Callable
from datetime import datetime

from laundry_auth.auth.models import Account, DeviceFingerprint, utc_now


class DeviceRegistry:
    """Remembers the devices an account logs in from.

    Fingerprints are advisory: an unknown device never blocks login, it is
    simply registered and shows up in the audit trail.
    """

    def __init__(
        self,
        max_devices: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_devices = max_devices
        self.clock = clock

    def is_authorized(self, account: Account, fingerprint: str) -> bool:
        """True iff an active entry with this fingerprint exists."""
        return any(
            d.fingerprint == fingerprint and d.is_active
            for d in account.device_fingerprints
        )

    def touch(self, account: Account, fingerprint: str) -> None:
        """Mark a known active device as used now."""
        for device in account.device_fingerprints:
            if device.fingerprint == fingerprint and device.is_active:
                device.last_used = self.clock()

    def register(
        self, account: Account, fingerprint: str, device_info: str | None = None
    ) -> DeviceFingerprint:
        """Add or refresh a device, keeping only the most recently used."""
        others = [d for d in account.device_fingerprints if d.fingerprint != fingerprint]
        if len(others) >= self.max_devices:
            others.sort(key=lambda d: d.last_used, reverse=True)
            others = others[: self.max_devices - 1]
        device = DeviceFingerprint(
            fingerprint=fingerprint,
            device_info=device_info,
            last_used=self.clock(),
        )
        # The new entry is the most recently used by definition
        account.device_fingerprints = others + [device]
        return device
