import random
from datetime import datetime, timedelta

from bookshare.services.otp_service import OTPCheck, OTPService
from bookshare.utils.clock import FixedClock

NOW = datetime(2024, 3, 1, 12, 0, 0)


def make_service(seed=7, ttl=10):
    return OTPService(FixedClock(NOW), ttl_minutes=ttl, rng=random.Random(seed))


def test_generate_returns_four_digit_code_and_expiry():
    code, expiry = make_service().generate()

    assert len(code) == 4
    assert code.isdigit()
    assert expiry == NOW + timedelta(minutes=10)


def test_generate_zero_pads_small_numbers():
    class LowRandom(random.Random):
        def randint(self, a, b):
            return 7

    code, _ = OTPService(FixedClock(NOW), rng=LowRandom()).generate()
    assert code == "0007"


def test_generate_uses_configured_ttl():
    _, expiry = make_service(ttl=3).generate()
    assert expiry == NOW + timedelta(minutes=3)


def test_codes_cover_the_whole_range():
    service = make_service(seed=42)
    codes = {service.generate()[0] for _ in range(2000)}
    assert all(len(c) == 4 for c in codes)
    assert len(codes) > 1500


def test_matching_code_before_expiry_is_valid():
    expiry = NOW + timedelta(minutes=10)
    assert OTPService.validate("1234", "1234", expiry, NOW) == OTPCheck.VALID


def test_code_is_still_valid_at_the_exact_expiry_instant():
    assert OTPService.validate("1234", "1234", NOW, NOW) == OTPCheck.VALID


def test_matching_code_after_expiry_is_expired():
    expiry = NOW - timedelta(seconds=1)
    assert OTPService.validate("1234", "1234", expiry, NOW) == OTPCheck.EXPIRED


def test_wrong_code_after_expiry_reports_expired_not_mismatch():
    expiry = NOW - timedelta(minutes=1)
    assert OTPService.validate("9999", "1234", expiry, NOW) == OTPCheck.EXPIRED


def test_wrong_code_before_expiry_is_mismatch():
    expiry = NOW + timedelta(minutes=5)
    assert OTPService.validate("4321", "1234", expiry, NOW) == OTPCheck.MISMATCH


def test_missing_stored_code_is_expired():
    assert OTPService.validate("1234", None, None, NOW) == OTPCheck.EXPIRED


def test_entered_code_is_trimmed_and_none_is_a_mismatch():
    expiry = NOW + timedelta(minutes=5)
    assert OTPService.validate(" 1234 ", "1234", expiry, NOW) == OTPCheck.VALID
    assert OTPService.validate(None, "1234", expiry, NOW) == OTPCheck.MISMATCH
