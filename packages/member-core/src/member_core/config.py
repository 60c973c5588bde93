"""
Environment-based configuration for the member reconciler.

All settings can be overridden via environment variables with the
MEMBER_OPERATOR_ prefix. For example:
    MEMBER_OPERATOR_AUTO_FAILOVER=false
    MEMBER_OPERATOR_RPC_TIMEOUT_SECONDS=5
    MEMBER_OPERATOR_QUORUM='{"tikv": {"min_healthy_fraction": 0.67}}'
"""

import math

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from member_core.types import MemberType


class QuorumPolicy(BaseModel):
    """
    Minimum healthy members required before failover recovery runs.

    The threshold is the larger of `min_healthy_count` and
    `ceil(min_healthy_fraction * spec_replicas)`. The default (fraction 1.0)
    requires every desired, non-replacement replica to be healthy.

    Example:
        QuorumPolicy(min_healthy_fraction=0.5, min_healthy_count=2).threshold(5)
        # 3
    """

    min_healthy_fraction: float = Field(default=1.0, ge=0.0, le=1.0)
    min_healthy_count: int = Field(default=0, ge=0)

    def threshold(self, replicas: int) -> int:
        by_fraction = math.ceil(self.min_healthy_fraction * max(replicas, 0))
        return max(self.min_healthy_count, by_fraction)


class ReconcilerSettings(BaseSettings):
    """Reconciler configuration."""

    # Failover
    auto_failover: bool = True
    quorum: dict[str, QuorumPolicy] = Field(default_factory=dict)

    # Control RPC
    rpc_timeout_seconds: float = 10.0

    # Controller loop
    resync_seconds: float = 30.0
    workers: int = 4
    retry_min_wait_seconds: float = 1.0
    retry_max_wait_seconds: float = 60.0

    # Volume lifecycle
    volume_deletion_grace_seconds: float = 300.0

    # Scope
    namespace: str = ""

    # Logging
    log_level: str = "INFO"

    model_config = {"env_prefix": "MEMBER_OPERATOR_"}

    def quorum_policy(self, member_type: MemberType) -> QuorumPolicy:
        return self.quorum.get(member_type.value, QuorumPolicy())
