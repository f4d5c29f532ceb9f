"""
Tests for approval policy configuration loading and validation.

Covers:
- Loader (parse_threshold, parse_bypass, build_snapshot) -- YAML dict parsing
- Validator (validate_policy_data) -- band contiguity, duplicates, rule shape
- End-to-end (get_active_config) -- default set, checksum, failure modes
"""

from __future__ import annotations

import copy
from decimal import Decimal

import pytest
import yaml

from procure_config import DEFAULT_POLICY_PATH, get_active_config, validate_policy_data
from procure_config.loader import build_snapshot, load_yaml_file, parse_amount, parse_bypass
from procure_kernel.domain.principal import UserRole
from procure_kernel.domain.requisition import (
    BudgetHierarchy,
    CriticalityLevel,
    UrgencyLevel,
)
from procure_kernel.exceptions import ConfigurationError


@pytest.fixture
def default_data():
    return copy.deepcopy(load_yaml_file(DEFAULT_POLICY_PATH))


def write_policy(tmp_path, data):
    path = tmp_path / "policy.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


# =========================================================================
# 1. Loader
# =========================================================================


class TestLoader:

    def test_parse_amount(self):
        assert parse_amount(None) is None
        assert parse_amount(500) == Decimal("500")
        assert parse_amount("0.5") == Decimal("0.5")
        with pytest.raises(ValueError):
            parse_amount(True)

    def test_parse_bypass_roles_and_limits(self):
        bypass = parse_bypass({
            "urgency_level": "EMERGENCY",
            "criticality_level": "SAFETY_CRITICAL",
            "allowed_roles": ["CAPTAIN", "CHIEF_ENGINEER"],
            "requires_post_approval": True,
            "expiration_hours": 24,
        })

        assert bypass.key == (UrgencyLevel.EMERGENCY, CriticalityLevel.SAFETY_CRITICAL)
        assert bypass.allowed_roles == frozenset({UserRole.CAPTAIN, UserRole.CHIEF_ENGINEER})
        assert bypass.max_amount is None
        assert bypass.allows("CAPTAIN")
        assert not bypass.allows("VESSEL_CREW")
        assert not bypass.allows("NOT_A_ROLE")

    def test_build_snapshot_from_default(self, default_data):
        snapshot = build_snapshot(default_data)

        assert snapshot.name == "default"
        assert snapshot.version == "1.0"
        assert snapshot.compliance_regulation == "SOLAS"
        assert len(snapshot.thresholds_for("USD")) == 4
        assert snapshot.thresholds_for("USD")[-1].max_amount is None


# =========================================================================
# 2. Validator
# =========================================================================


class TestValidator:

    def test_default_set_is_valid(self, default_data):
        result = validate_policy_data(default_data)
        assert result.is_valid, result.errors
        assert result.warnings == []

    def test_not_a_mapping(self):
        result = validate_policy_data(["thresholds"])
        assert not result.is_valid

    def test_missing_name_and_version(self, default_data):
        del default_data["name"]
        del default_data["version"]

        result = validate_policy_data(default_data)

        assert "missing required key 'name'" in result.errors
        assert "missing required key 'version'" in result.errors

    def test_no_thresholds(self, default_data):
        default_data["thresholds"] = []
        result = validate_policy_data(default_data)
        assert "no approval thresholds configured" in result.errors

    def test_overlapping_bands(self, default_data):
        default_data["thresholds"][1]["max_amount"] = 6000

        result = validate_policy_data(default_data)

        assert any("overlap" in e for e in result.errors)

    def test_gap_between_bands(self, default_data):
        default_data["thresholds"][1]["max_amount"] = 4000

        result = validate_policy_data(default_data)

        assert any("gap between" in e for e in result.errors)

    def test_unbounded_band_must_be_last(self, default_data):
        del default_data["thresholds"][1]["max_amount"]

        result = validate_policy_data(default_data)

        assert any("is not last" in e for e in result.errors)

    def test_lowest_band_above_zero_is_warning(self, default_data):
        default_data["thresholds"] = default_data["thresholds"][1:]

        result = validate_policy_data(default_data)

        assert result.is_valid
        assert any("not 0" in w for w in result.warnings)

    def test_unknown_role_and_level(self, default_data):
        default_data["thresholds"][1]["required_role"] = "BOSUN"
        default_data["thresholds"][2]["approver_level"] = 7

        result = validate_policy_data(default_data)

        assert any("unknown role 'BOSUN'" in e for e in result.errors)
        assert any("outside 0..3" in e for e in result.errors)

    def test_duplicate_threshold_id(self, default_data):
        default_data["thresholds"][2]["threshold_id"] = "usd-superintendent"
        result = validate_policy_data(default_data)
        assert "duplicate threshold_id 'usd-superintendent'" in result.errors

    def test_duplicate_bypass(self, default_data):
        default_data["emergency_bypasses"].append(
            copy.deepcopy(default_data["emergency_bypasses"][0])
        )

        result = validate_policy_data(default_data)

        assert "duplicate emergency bypass for EMERGENCY/SAFETY_CRITICAL" in result.errors

    def test_bypass_without_roles(self, default_data):
        default_data["emergency_bypasses"][0]["allowed_roles"] = []
        result = validate_policy_data(default_data)
        assert any("no allowed roles" in e for e in result.errors)

    def test_rule_with_unknown_operator(self, default_data):
        default_data["rules"] = [{
            "rule_id": "r1",
            "conditions": [{"field": "amount", "operator": "between", "value": 1}],
            "actions": [{"type": "APPROVE"}],
        }]

        result = validate_policy_data(default_data)

        assert any("unknown operator" in e for e in result.errors)

    def test_rule_without_conditions_warns(self, default_data):
        default_data["rules"] = [
            {"rule_id": "r1", "conditions": [], "actions": [{"type": "NOTIFY"}]}
        ]

        result = validate_policy_data(default_data)

        assert result.is_valid
        assert "rule r1 has no conditions and never matches" in result.warnings

    def test_negative_urgency_delay(self, default_data):
        default_data["urgency_modifiers"][0]["escalation_delay_hours"] = -1
        result = validate_policy_data(default_data)
        assert any("negative delay" in e for e in result.errors)


# =========================================================================
# 3. get_active_config
# =========================================================================


class TestGetActiveConfig:

    def test_default_policy(self):
        snapshot = get_active_config()

        assert snapshot.name == "default"
        assert snapshot.role_for_level(2) == "PROCUREMENT_MANAGER"
        assert snapshot.hierarchy_for_level(3) is BudgetHierarchy.COMPANY
        assert snapshot.escalation_delay_hours(UrgencyLevel.URGENT) == 2.0

    def test_checksum_is_deterministic(self):
        assert get_active_config().checksum == get_active_config().checksum

    def test_checksum_tracks_content(self, tmp_path, default_data):
        default_data["urgency_modifiers"][0]["escalation_delay_hours"] = 48
        changed = get_active_config(write_policy(tmp_path, default_data))

        assert changed.checksum != get_active_config().checksum

    def test_invalid_policy_raises_with_all_errors(self, tmp_path, default_data):
        default_data["thresholds"][1]["max_amount"] = 4000
        default_data["emergency_bypasses"][0]["expiration_hours"] = 0

        with pytest.raises(ConfigurationError) as exc_info:
            get_active_config(write_policy(tmp_path, default_data))

        assert len(exc_info.value.errors) == 2
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_rules_from_yaml_are_parsed(self, tmp_path, default_data):
        default_data["rules"] = [{
            "rule_id": "dry-dock",
            "priority": 10,
            "conditions": [{"field": "metadata.dry_dock", "operator": "eq", "value": True}],
            "actions": [{"type": "ESCALATE", "approver_level": 3}],
        }]

        snapshot = get_active_config(write_policy(tmp_path, default_data))

        assert [r.rule_id for r in snapshot.active_rules()] == ["dry-dock"]

    def test_trace_and_warnings_logged(self, tmp_path, default_data, captured_logs):
        default_data["thresholds"] = default_data["thresholds"][1:]

        snapshot = get_active_config(write_policy(tmp_path, default_data))

        logs = captured_logs()
        warnings = [r for r in logs if r["message"] == "policy_config_warning"]
        traces = [r for r in logs if r["message"] == "POLICY_CONFIG_TRACE"]
        assert len(warnings) == 1
        assert traces[0]["checksum"] == snapshot.checksum
        assert traces[0]["threshold_count"] == 3
        assert traces[0]["bypass_count"] == 3
