"""Tests for the session nonce registry."""

import pytest

from interface.api.nonces import NonceError, NonceRegistry


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return NonceRegistry(ttl_s=60, clock=clock)


class TestNonceRegistry:
    def test_issue_binds_nullifier(self, registry):
        record = registry.issue("nul1")

        assert len(record.session_nonce) == 64
        assert record.scope == "sp1"
        assert record.expires_at - record.issued_at == 60
        assert registry.check(record.session_nonce, "nul1") == record

    def test_nonces_are_unique(self, registry):
        assert registry.issue("nul1").session_nonce != registry.issue("nul1").session_nonce

    def test_issue_requires_nullifier(self, registry):
        with pytest.raises(NonceError) as exc_info:
            registry.issue("")
        assert exc_info.value.code == "EMPTY_NULLIFIER"

    def test_unknown_nonce(self, registry):
        with pytest.raises(NonceError) as exc_info:
            registry.check("deadbeef", "nul1")
        assert exc_info.value.code == "UNKNOWN_NONCE"

    def test_nullifier_mismatch(self, registry):
        record = registry.issue("nul1")
        with pytest.raises(NonceError) as exc_info:
            registry.check(record.session_nonce, "nul2")
        assert exc_info.value.code == "NONCE_NULLIFIER_MISMATCH"

    def test_consume_is_single_use(self, registry):
        record = registry.issue("nul1")

        registry.consume(record.session_nonce, "nul1")

        with pytest.raises(NonceError):
            registry.consume(record.session_nonce, "nul1")
        assert len(registry) == 0

    def test_check_does_not_consume(self, registry):
        record = registry.issue("nul1")
        registry.check(record.session_nonce, "nul1")
        registry.check(record.session_nonce, "nul1")
        assert len(registry) == 1

    def test_expired(self, registry, clock):
        record = registry.issue("nul1")
        clock.now += 60

        with pytest.raises(NonceError) as exc_info:
            registry.check(record.session_nonce, "nul1")

        assert exc_info.value.code == "EXPIRED_NONCE"
        assert len(registry) == 0

    def test_expired_purged_on_issue(self, registry, clock):
        registry.issue("nul1")
        clock.now += 120
        registry.issue("nul2")
        assert len(registry) == 1

    def test_other_scope_rejected(self, registry):
        record = registry.issue("nul1", scope="zk")
        with pytest.raises(NonceError):
            registry.check(record.session_nonce, "nul1")

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            NonceRegistry(ttl_s=0)
