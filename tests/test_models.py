"""Unit tests for models.py - Remote records, request options and state records."""

import pytest

from models import (
    CUSTOMER_FLAG_FIELDS,
    Cluster,
    ClusterState,
    ClusterStatus,
    CreateClusterOpts,
    Customer,
    CustomerConfig,
    CustomerOpts,
    normalize_expires_at,
    record_from_dict,
    record_to_dict,
)


class TestClusterStatus:
    """Tests for ClusterStatus enum."""

    def test_known_values(self):
        assert ClusterStatus("running") is ClusterStatus.RUNNING
        assert ClusterStatus("upgrade_error") is ClusterStatus.UPGRADE_ERROR

    def test_unknown_value_falls_back(self):
        assert ClusterStatus("hibernating") is ClusterStatus.UNKNOWN

    def test_is_failed(self):
        assert ClusterStatus.ERROR.is_failed
        assert ClusterStatus.UPGRADE_ERROR.is_failed
        assert not ClusterStatus.RUNNING.is_failed
        assert not ClusterStatus.UNKNOWN.is_failed


class TestCluster:
    """Tests for the Cluster record."""

    def test_ignores_unknown_fields_and_nulls(self):
        cluster = Cluster.model_validate(
            {
                "id": "c-1",
                "name": None,
                "node_count": None,
                "status": "brand_new_status",
                "credits_per_hour": 12,
            }
        )
        assert cluster.name == ""
        assert cluster.node_count == 0
        assert cluster.status is ClusterStatus.UNKNOWN


class TestCustomer:
    """Tests for the Customer record."""

    def test_parses_wire_names(self, sample_customer):
        assert sample_customer.is_airgap_enabled is True
        assert sample_customer.is_installer_support_enabled is True
        assert sample_customer.channels[0].app_id == "app-1"
        assert sample_customer.entitlements[0].name == "testEntitlement"

    def test_formatted_expires_at(self, sample_customer):
        assert sample_customer.formatted_expires_at() == "2030-01-02T03:04:05Z"

    def test_formatted_expires_at_converts_to_utc(self):
        customer = Customer.model_validate(
            {"id": "c", "expiresAt": "2030-01-02T05:04:05+02:00"}
        )
        assert customer.formatted_expires_at() == "2030-01-02T03:04:05Z"

    def test_empty_expiry(self):
        customer = Customer.model_validate({"id": "c", "expiresAt": ""})
        assert customer.expires_at is None
        assert customer.formatted_expires_at() == ""

    def test_entitlement_values_are_strings(self):
        customer = Customer.model_validate(
            {"id": "c", "entitlements": [{"name": "seats", "value": 10}]}
        )
        assert customer.entitlements[0].value == "10"


class TestNormalizeExpiresAt:
    """Tests for normalize_expires_at."""

    def test_offset_is_converted_to_utc(self):
        assert normalize_expires_at("2030-01-02T05:04:05+02:00") == "2030-01-02T03:04:05Z"

    def test_date_only_is_midnight_utc(self):
        assert normalize_expires_at("2030-01-02") == "2030-01-02T00:00:00Z"

    def test_empty_stays_empty(self):
        assert normalize_expires_at("") == ""

    def test_invalid_raises(self):
        with pytest.raises(ValueError):
            normalize_expires_at("soon")


class TestCreateClusterOpts:
    """Tests for CreateClusterOpts.to_payload."""

    def test_omits_unset_fields(self):
        opts = CreateClusterOpts(kubernetes_distribution="kind", node_count=2)
        assert opts.to_payload() == {"kubernetes_distribution": "kind", "node_count": 2}


class TestCustomerOpts:
    """Tests for CustomerOpts.to_payload."""

    def test_payload_carries_every_field(self):
        opts = CustomerOpts(
            app_id="app-1",
            channel_ids=["chan-1"],
            name="Acme",
            entitlement_values=[("seats", "10"), ("tier", "gold")],
            flags={"is_helmvm_download_enabled": True},
        )
        payload = opts.to_payload()

        assert payload["channel_id"] == "chan-1"
        assert payload["channels"] == [{"channel_id": "chan-1"}]
        assert payload["type"] == "trial"
        assert payload["entitlementValues"] == [
            {"name": "seats", "value": "10"},
            {"name": "tier", "value": "gold"},
        ]
        assert payload["is_helm_vm_download_enabled"] is True
        for wire_name in CUSTOMER_FLAG_FIELDS.values():
            assert wire_name in payload


class TestRecords:
    """Tests for config/state dataclass helpers."""

    def test_customer_config_defaults(self):
        config = CustomerConfig(app_id="a", channel_id="c", name="n")
        assert config.is_installer_support_enabled is True
        assert config.type == "trial"
        assert len(config.flags()) == 10

    def test_record_round_trip_ignores_unknown_keys(self):
        state = ClusterState(distribution="kind", id="c-1", kubeconfig="apiVersion: v1")
        data = record_to_dict(state)
        data["legacy_field"] = "x"

        assert record_from_dict(ClusterState, data) == state

    def test_none_falls_back_to_default(self):
        state = record_from_dict(ClusterState, {"distribution": "kind", "disk": None})
        assert state.disk == 0

    def test_kubeconfig_hidden_from_repr(self):
        state = ClusterState(distribution="kind", kubeconfig="secret-kubeconfig")
        assert "secret-kubeconfig" not in repr(state)
