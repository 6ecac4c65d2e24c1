"""Tests for AlertRule data class and loading"""

import pytest
import tempfile
import os
from pathlib import Path

from alert_router.alerts.alert_rule import AlertRule, load_alert_rules


def write_rules(content):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yml', delete=False) as f:
        f.write(content)
        return f.name


class TestAlertRule:
    """Test AlertRule data class"""

    def test_create_valid_rule(self):
        """Test creating a valid alert rule"""
        rule = AlertRule(
            name="NeurocaServiceDown",
            expr='up{job="neuroca-services"} == 0',
            group="neuroca-alerts",
            for_duration=60.0,
            labels={"severity": "critical"},
            annotations={"summary": "NeuroCognitive Architecture service down"},
        )

        assert rule.name == "NeurocaServiceDown"
        assert rule.severity == "critical"
        assert rule.for_duration == 60.0

    def test_invalid_name(self):
        """Test that alert names must be valid label values for alertname"""
        with pytest.raises(ValueError, match="Invalid alert name"):
            AlertRule(name="service down", expr="up == 0")

    def test_empty_expr(self):
        with pytest.raises(ValueError, match="expr"):
            AlertRule(name="Down", expr="  ")

    def test_invalid_severity(self):
        """Test that invalid severity raises error"""
        with pytest.raises(ValueError, match="invalid severity"):
            AlertRule(name="Down", expr="up == 0", labels={"severity": "extreme"})

    def test_negative_duration(self):
        """Test that negative duration raises error"""
        with pytest.raises(ValueError, match="for must be >= 0"):
            AlertRule(name="Down", expr="up == 0", for_duration=-1)

    def test_invalid_label_name(self):
        with pytest.raises(ValueError, match="invalid label or annotation name"):
            AlertRule(name="Down", expr="up == 0", labels={"team-name": "infra"})

    def test_severity_optional(self):
        assert AlertRule(name="Down", expr="up == 0").severity == ''


class TestLoadAlertRules:
    """Test loading Prometheus rule groups from YAML"""

    def test_load_deploy_rules(self):
        """Test the rules shipped under deploy/"""
        rules_file = Path(__file__).resolve().parents[2] / 'deploy' / 'alert_rules.yml'

        rules = load_alert_rules(str(rules_file))

        assert [r.name for r in rules] == [
            "NeurocaServiceDown", "NeurocaHighMemoryUsage", "NeurocaHighCPUUsage",
        ]
        assert rules[0].severity == "critical"
        assert rules[0].for_duration == 60
        assert rules[1].for_duration == 300
        assert all(r.group == "neuroca-alerts" for r in rules)
        assert "{{ $labels.pod }}" in rules[1].annotations["description"]

    def test_skips_recording_rules(self):
        temp_file = write_rules("""
groups:
  - name: mixed
    rules:
      - record: job:up:sum
        expr: sum by (job) (up)
      - alert: JobDown
        expr: job:up:sum == 0
        for: 2m
""")
        try:
            rules = load_alert_rules(temp_file)
            assert len(rules) == 1
            assert rules[0].name == "JobDown"
            assert rules[0].for_duration == 120
        finally:
            os.unlink(temp_file)

    def test_load_empty_file(self):
        """Test loading empty YAML file"""
        temp_file = write_rules("")

        try:
            rules = load_alert_rules(temp_file)
            assert len(rules) == 0
        finally:
            os.unlink(temp_file)

    def test_load_missing_file(self):
        """Test loading non-existent file"""
        with pytest.raises(FileNotFoundError):
            load_alert_rules("/nonexistent/file.yaml")

    def test_load_invalid_yaml(self):
        """Test loading invalid YAML"""
        temp_file = write_rules("invalid: yaml: content: [")

        try:
            with pytest.raises(ValueError, match="Invalid YAML"):
                load_alert_rules(temp_file)
        finally:
            os.unlink(temp_file)

    def test_duplicate_group(self):
        temp_file = write_rules("""
groups:
  - name: g
    rules: []
  - name: g
    rules: []
""")
        try:
            with pytest.raises(ValueError, match="Duplicate rule group"):
                load_alert_rules(temp_file)
        finally:
            os.unlink(temp_file)

    def test_missing_expr(self):
        temp_file = write_rules("""
groups:
  - name: g
    rules:
      - alert: NoExpr
""")
        try:
            with pytest.raises(ValueError, match="missing field"):
                load_alert_rules(temp_file)
        finally:
            os.unlink(temp_file)

    def test_invalid_for_duration(self):
        temp_file = write_rules("""
groups:
  - name: g
    rules:
      - alert: Down
        expr: up == 0
        for: soon
""")
        try:
            with pytest.raises(ValueError, match="Invalid duration"):
                load_alert_rules(temp_file)
        finally:
            os.unlink(temp_file)
