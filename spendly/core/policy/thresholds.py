"""Per-organization approval thresholds.

Thresholds are looked up per (organization, currency). Missing or
unreadable configuration falls back to the configured defaults instead of
failing, and the defaults lean toward requiring approval.
"""

import logging
import os
from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple

import yaml

from spendly.core.config import Settings, get_settings
from spendly.core.errors import PolicyUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdPolicy:
    """
    Approval cutoffs for one organization and currency.

    Stores may return a policy with either field unset; the resolver fills
    the gaps from defaults.
    """
    auto_approve_threshold: Optional[Decimal] = None
    dual_approval_threshold: Optional[Decimal] = None
    source: str = "configured"

    @property
    def is_complete(self) -> bool:
        return self.auto_approve_threshold is not None and self.dual_approval_threshold is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "auto_approve_threshold": _str_or_none(self.auto_approve_threshold),
            "dual_approval_threshold": _str_or_none(self.dual_approval_threshold),
            "source": self.source,
        }


class PolicyStore(Protocol):
    def resolve(self, org_id: str, currency: str) -> Optional[ThresholdPolicy]:
        ...


class ThresholdResolver:
    """Resolves complete thresholds, never raising for missing policy."""

    def __init__(self, store: Optional[PolicyStore] = None, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    @property
    def defaults(self) -> ThresholdPolicy:
        return ThresholdPolicy(
            auto_approve_threshold=Decimal(self.settings.default_auto_approve_threshold),
            dual_approval_threshold=Decimal(self.settings.default_dual_approval_threshold),
            source="default",
        )

    def resolve(self, org_id: str, currency: str) -> ThresholdPolicy:
        """
        Get the thresholds that apply to an organization and currency.

        Args:
            org_id: Organization ID
            currency: Currency code of the amount being evaluated

        Returns:
            ThresholdPolicy with both thresholds set
        """
        defaults = self.defaults
        if self.store is None:
            return defaults

        try:
            policy = self.store.resolve(org_id, currency)
        except PolicyUnavailableError as e:
            logger.warning(f"Policy store unavailable for org {org_id}, using defaults: {e}")
            return defaults

        if policy is None:
            logger.warning(f"No approval policy for org {org_id} ({currency}), using defaults")
            return defaults

        if policy.is_complete:
            return policy

        return replace(
            policy,
            auto_approve_threshold=(
                policy.auto_approve_threshold
                if policy.auto_approve_threshold is not None
                else defaults.auto_approve_threshold
            ),
            dual_approval_threshold=(
                policy.dual_approval_threshold
                if policy.dual_approval_threshold is not None
                else defaults.dual_approval_threshold
            ),
            source="partial",
        )


class StaticPolicyStore:
    """In-process policy table keyed by (org_id, currency).

    A ``None`` currency key holds the organization's any-currency policy.
    """

    def __init__(self, policies: Optional[Dict[Tuple[str, Optional[str]], ThresholdPolicy]] = None):
        self._policies = dict(policies or {})

    def set_policy(self, org_id: str, policy: ThresholdPolicy, currency: Optional[str] = None) -> None:
        self._policies[(org_id, currency.upper() if currency else None)] = policy

    def resolve(self, org_id: str, currency: str) -> Optional[ThresholdPolicy]:
        exact = self._policies.get((org_id, currency.upper()))
        if exact is not None:
            return exact
        return self._policies.get((org_id, None))


def parse_policy_config(config_dict: Dict[str, Any]) -> StaticPolicyStore:
    """Parse a policy configuration dictionary.

    Expected shape::

        organizations:
          org-123:
            auto_approve_threshold: 100
            dual_approval_threshold: 5000
            currencies:
              NGN:
                dual_approval_threshold: 2000000

    Returns:
        StaticPolicyStore instance
    """
    store = StaticPolicyStore()
    for org_id, org_dict in (config_dict.get("organizations") or {}).items():
        org_dict = org_dict or {}
        store.set_policy(str(org_id), _parse_thresholds(org_dict))
        for currency, currency_dict in (org_dict.get("currencies") or {}).items():
            store.set_policy(str(org_id), _parse_thresholds(currency_dict or {}), currency=currency)
    return store


def load_policy_file(path: str) -> StaticPolicyStore:
    """Load threshold policies from a YAML file.

    Args:
        path: Path to the policy file

    Returns:
        StaticPolicyStore with the file's policies

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is invalid YAML
    """
    policy_file = Path(path)

    if not policy_file.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")

    with policy_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Policy file root must be a mapping, got {type(config).__name__}"
        )

    return parse_policy_config(_expand_env_vars(config))


def _parse_thresholds(values: Dict[str, Any]) -> ThresholdPolicy:
    return ThresholdPolicy(
        auto_approve_threshold=_decimal_or_none(values.get("auto_approve_threshold")),
        dual_approval_threshold=_decimal_or_none(values.get("dual_approval_threshold")),
    )


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _str_or_none(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj
