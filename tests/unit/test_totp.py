"""Tests for TOTP computation, verification and provisioning."""

from __future__ import annotations

from urllib.parse import parse_qs, unquote, urlparse

import pytest

from cqrs_ddd_verification.exceptions import UnsupportedAlgorithmError
from cqrs_ddd_verification.totp import (
    TotpAlgorithm,
    base32_decode,
    format_secret,
    generate_secret,
    is_base32_secret,
    provisioning_uri,
    totp_at,
    verify_totp,
)

# RFC 6238 appendix B seeds
SHA1_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
SHA256_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQGEZA"


class TestBase32:
    def test_decode(self) -> None:
        assert base32_decode(SHA1_SECRET) == b"12345678901234567890"

    def test_decode_is_lenient_about_format(self) -> None:
        assert base32_decode("gezd gnbv-gy3t qojq====") == base32_decode(
            "GEZDGNBVGY3TQOJQ"
        )

    def test_invalid_character(self) -> None:
        assert base32_decode("GEZDGNBV1") == b""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("JBSWY3DPEHPK3PXP", True),
            (SHA1_SECRET, True),
            ("JBSWY3DP", False),
            ("jbswy3dpehpk3pxp", False),
            ("bm9uY2UrdGFnK2NpcGhlcnRleHQ=", False),
        ],
    )
    def test_is_base32_secret(self, value: str, expected: bool) -> None:
        assert is_base32_secret(value) is expected


class TestTotpAlgorithm:
    @pytest.mark.parametrize(
        ("timestamp", "expected"),
        [(59, "94287082"), (1111111109, "07081804"), (2000000000, "69279037")],
    )
    def test_rfc6238_sha1(self, timestamp: int, expected: str) -> None:
        assert totp_at(SHA1_SECRET, timestamp, digits=8) == expected

    def test_rfc6238_sha256(self) -> None:
        assert totp_at(SHA256_SECRET, 59, digits=8, algorithm="sha256") == "46119246"

    def test_six_digits(self) -> None:
        assert totp_at(SHA1_SECRET, 59) == "287082"

    def test_unknown_algorithm_falls_back_to_sha1(self) -> None:
        assert totp_at(SHA1_SECRET, 59, algorithm="md5") == "287082"

    def test_undecodable_secret(self) -> None:
        assert TotpAlgorithm().at("not-base32!", 59) == ""

    def test_verify_current_step(self) -> None:
        assert verify_totp(SHA1_SECRET, "287082", 59)

    def test_verify_within_drift(self) -> None:
        algo = TotpAlgorithm()
        previous = algo.at(SHA1_SECRET, 1_700_000_000 - 30)
        following = algo.at(SHA1_SECRET, 1_700_000_000 + 30)
        assert algo.verify(SHA1_SECRET, previous, 1_700_000_000)
        assert algo.verify(SHA1_SECRET, following, 1_700_000_000)

    def test_verify_outside_drift(self) -> None:
        algo = TotpAlgorithm(drift=0)
        previous = algo.at(SHA1_SECRET, 1_700_000_000 - 30)
        assert not algo.verify(SHA1_SECRET, previous, 1_700_000_000)

    @pytest.mark.parametrize("code", ["", "28708", "2870820", "28708a", "000000"])
    def test_verify_rejects(self, code: str) -> None:
        assert not verify_totp(SHA1_SECRET, code, 59)

    @pytest.mark.parametrize(
        "code",
        [
            "２８７０８２",  # fullwidth 287082
            "٢٨٧٠٨٢",  # Arabic-Indic 287082
            "२८७०८२",  # Devanagari 287082
        ],
    )
    def test_verify_rejects_non_ascii_digits(self, code: str) -> None:
        assert code.isdigit()
        assert not verify_totp(SHA1_SECRET, code, 59)
        assert not TotpAlgorithm().verify(SHA1_SECRET, code, 59)

    def test_verify_rejects_bad_secret(self) -> None:
        assert not verify_totp("!!!", "287082", 59)

    def test_verify_near_epoch_skips_negative_counters(self) -> None:
        assert verify_totp(SHA1_SECRET, totp_at(SHA1_SECRET, 0), 0)


class TestProvisioning:
    def test_uri(self) -> None:
        uri = provisioning_uri("JBSWY3DPEHPK3PXP", "jane@example.com", "Acme")
        parsed = urlparse(uri)
        query = parse_qs(parsed.query)

        assert parsed.scheme == "otpauth"
        assert parsed.netloc == "totp"
        assert unquote(parsed.path) == "/Acme:jane@example.com"
        assert query["secret"] == ["JBSWY3DPEHPK3PXP"]
        assert query["issuer"] == ["Acme"]

    def test_uri_advertises_algorithm(self) -> None:
        uri = TotpAlgorithm(digits=8, period=60, algorithm="sha256").provisioning_uri(
            "JBSWY3DPEHPK3PXP", "jane", "Acme"
        )
        query = parse_qs(urlparse(uri).query)
        assert query["algorithm"] == ["SHA256"]
        assert query["digits"] == ["8"]
        assert query["period"] == ["60"]

    def test_unknown_algorithm(self) -> None:
        with pytest.raises(UnsupportedAlgorithmError):
            TotpAlgorithm(algorithm="md5").provisioning_uri("JBSWY3DPEHPK3PXP", "a", "b")


class TestSecrets:
    def test_generate_secret(self) -> None:
        secret = generate_secret()
        assert len(secret) == 32
        assert is_base32_secret(secret)
        assert len(base32_decode(secret)) == 20

    def test_format_secret(self) -> None:
        assert format_secret("jbswy3dpehpk3pxp") == "JBSW Y3DP EHPK 3PXP"
