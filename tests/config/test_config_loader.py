"""
Runtime configuration: packaged defaults, overlays, validation, bridges.
"""

import pytest
import yaml

from replenishment_config import CONFIG_ENV_VAR, get_active_config
from replenishment_config.bridges import build_replenishment_service, service_kwargs_from_config
from replenishment_config.loader import compute_checksum, merge, parse_section
from tests.conftest import ACTOR, CLIENT_ID, DC_ID, SHOP_ID, items


@pytest.fixture(autouse=True)
def _no_env_overlay(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


@pytest.fixture
def write_overlay(tmp_path):
    def _write(data, name="overlay.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestDefaults:
    def test_packaged_defaults(self):
        config = get_active_config()
        assert config.concurrency.max_conflict_retries == 3
        assert config.concurrency.retry_backoff_seconds == 0.05
        assert config.inventory.default_low_stock_threshold == 5
        assert config.stats.recent_transfer_window_days == 30
        assert config.listing.default_limit == 50
        assert config.notifications.max_backoff_seconds == 600
        assert config.storage.database_url.startswith("sqlite")
        assert len(config.sources) == 1

    def test_checksum_deterministic(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert compute_checksum({"a": {"x": 1, "y": 2}}) == compute_checksum({"a": {"y": 2, "x": 1}})

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "REPLENISHMENT_CONFIG_TRACE"]
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["dialect"] == "sqlite"


class TestOverlay:
    def test_explicit_path(self, write_overlay):
        path = write_overlay({"listing": {"default_limit": 10}, "concurrency": {"retry_backoff_seconds": 1}})
        config = get_active_config(path)
        assert config.listing.default_limit == 10
        assert config.concurrency.retry_backoff_seconds == 1.0
        # untouched keys keep their defaults
        assert config.concurrency.max_conflict_retries == 3
        assert config.sources[-1] == str(path)
        assert config.checksum != get_active_config().checksum

    def test_env_var(self, write_overlay, monkeypatch):
        path = write_overlay({"inventory": {"default_low_stock_threshold": 0}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert get_active_config().inventory.default_low_stock_threshold == 0

    def test_explicit_path_wins_over_env(self, write_overlay, monkeypatch):
        env_path = write_overlay({"listing": {"default_limit": 7}}, name="env.yaml")
        arg_path = write_overlay({"listing": {"default_limit": 9}}, name="arg.yaml")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(env_path))
        assert get_active_config(arg_path).listing.default_limit == 9

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_empty_overlay(self, write_overlay, tmp_path):
        empty = tmp_path / "empty.yaml"
        empty.write_text("")
        assert get_active_config(empty).listing.default_limit == 50


class TestValidation:
    def test_unknown_section(self, write_overlay):
        with pytest.raises(KeyError, match="metrics"):
            get_active_config(write_overlay({"metrics": {"enabled": True}}))

    def test_unknown_key(self, write_overlay):
        with pytest.raises(KeyError, match="default_limt"):
            get_active_config(write_overlay({"listing": {"default_limt": 5}}))

    @pytest.mark.parametrize(
        "section,key,value",
        [
            ("listing", "default_limit", "50"),
            ("listing", "default_limit", 0),
            ("concurrency", "max_conflict_retries", -1),
            ("concurrency", "max_conflict_retries", True),
            ("concurrency", "retry_backoff_seconds", "fast"),
            ("storage", "echo", "yes"),
            ("storage", "database_url", ""),
            ("notifications", "max_backoff_seconds", 0),
        ],
    )
    def test_bad_values(self, section, key, value):
        with pytest.raises(ValueError, match=f"{section}.{key}"):
            parse_section(section, {key: value})

    def test_zero_retries_allowed(self):
        assert parse_section("concurrency", {"max_conflict_retries": 0}).max_conflict_retries == 0

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            merge({"listing": {}}, {"listing": [1, 2]})


class TestBridges:
    def test_service_kwargs(self):
        kwargs = service_kwargs_from_config(get_active_config())
        assert kwargs["default_list_limit"] == 50
        assert kwargs["max_backoff_seconds"] == 600

    def test_service_built_from_config(self, write_overlay, session_factory, deterministic_clock):
        config = get_active_config(write_overlay({"listing": {"default_limit": 1}}))
        service = build_replenishment_service(config, session_factory, clock=deterministic_clock)

        for _ in range(2):
            deterministic_clock.tick()
            service.create_request(
                CLIENT_ID, shop_id=SHOP_ID, dc_id=DC_ID, requested_by=ACTOR,
                items=items(("SKU-1", "M", 1)),
            )
        assert len(list(service.list_requests(CLIENT_ID))) == 1

    def test_configured_threshold_applies(self, session_factory, deterministic_clock):
        service = build_replenishment_service(get_active_config(), session_factory, clock=deterministic_clock)
        service.adjust_stock(CLIENT_ID, DC_ID, "SKU-1", "M", 3, create_missing=True)
        record = service.get_inventory_record(CLIENT_ID, DC_ID, "SKU-1", "M")
        assert record.low_stock_threshold == 5
        assert record.is_low_stock
