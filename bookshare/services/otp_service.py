"""
One-time codes for the in-person handover and return.

A code is read aloud between two people standing together, so it only needs
to be uniformly distributed, not unpredictable. Codes are scoped to a single
transaction; collisions across transactions do not matter.
"""
import random
from datetime import datetime, timedelta
from enum import Enum


class OTPCheck(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


class OTPService:
    CODE_DIGITS = 4

    def __init__(self, clock, ttl_minutes: int = 10, rng: random.Random | None = None):
        self.clock = clock
        self.ttl = timedelta(minutes=ttl_minutes)
        self.rng = rng or random.Random()

    def generate(self) -> tuple[str, datetime]:
        code = f"{self.rng.randint(0, 10 ** self.CODE_DIGITS - 1):0{self.CODE_DIGITS}d}"
        return code, self.clock.now() + self.ttl

    @staticmethod
    def validate(entered_code, stored_code, expiry, now: datetime) -> OTPCheck:
        # expiry first: an expired code never validates, even when it matches
        if stored_code is None or expiry is None or now > expiry:
            return OTPCheck.EXPIRED
        if (entered_code or "").strip() != stored_code:
            return OTPCheck.MISMATCH
        return OTPCheck.VALID
