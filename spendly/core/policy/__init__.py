"""Threshold policy resolution for Spendly."""

from .thresholds import (
    ThresholdPolicy,
    ThresholdResolver,
    PolicyStore,
    StaticPolicyStore,
    parse_policy_config,
    load_policy_file,
)

__all__ = [
    "ThresholdPolicy",
    "ThresholdResolver",
    "PolicyStore",
    "StaticPolicyStore",
    "parse_policy_config",
    "load_policy_file",
]
