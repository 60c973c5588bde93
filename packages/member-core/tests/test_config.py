"""
Tests for environment-based settings.
"""

import pytest
from pydantic import ValidationError

from member_core.config import QuorumPolicy, ReconcilerSettings
from member_core.types import MemberType


class TestQuorumPolicy:
    def test_default_requires_all_replicas(self):
        assert QuorumPolicy().threshold(3) == 3
        assert QuorumPolicy().threshold(0) == 0

    def test_fraction_rounds_up(self):
        assert QuorumPolicy(min_healthy_fraction=0.5).threshold(5) == 3
        assert QuorumPolicy(min_healthy_fraction=0.67).threshold(3) == 3

    def test_count_floor(self):
        assert QuorumPolicy(min_healthy_fraction=0.0, min_healthy_count=2).threshold(5) == 2

    def test_fraction_bounds(self):
        with pytest.raises(ValidationError):
            QuorumPolicy(min_healthy_fraction=1.5)


class TestReconcilerSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("MEMBER_OPERATOR_AUTO_FAILOVER", raising=False)
        settings = ReconcilerSettings()
        assert settings.auto_failover is True
        assert settings.namespace == ""
        assert settings.quorum_policy(MemberType.TIKV) == QuorumPolicy()

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MEMBER_OPERATOR_AUTO_FAILOVER", "false")
        monkeypatch.setenv("MEMBER_OPERATOR_RPC_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("MEMBER_OPERATOR_NAMESPACE", "db")

        settings = ReconcilerSettings()

        assert settings.auto_failover is False
        assert settings.rpc_timeout_seconds == 5.0
        assert settings.namespace == "db"

    def test_quorum_from_json_env(self, monkeypatch):
        monkeypatch.setenv(
            "MEMBER_OPERATOR_QUORUM", '{"tikv": {"min_healthy_fraction": 0.67}}'
        )

        settings = ReconcilerSettings()

        assert settings.quorum_policy(MemberType.TIKV).threshold(3) == 3
        assert settings.quorum_policy(MemberType.TIKV).min_healthy_fraction == 0.67
        assert settings.quorum_policy(MemberType.TIFLASH) == QuorumPolicy()
