import pytest

from tiendapay.common.startup import safe_config
from tiendapay.services.payments.main import STARTUP_FIELDS


pytestmark = pytest.mark.unit


def test_secrets_never_logged(settings):
    config = safe_config(settings, STARTUP_FIELDS)

    for name in ("wompi_private_key", "wompi_event_secret", "wompi_integrity_secret", "postgres_dsn"):
        assert config[name] == "<redacted>"
    assert "prv_test_key" not in str(config)
    assert "test_events_secret" not in str(config)


def test_derived_urls_and_unset_values(settings):
    config = safe_config(settings, STARTUP_FIELDS)

    assert config["wompi_env"] == "sandbox"
    assert config["wompi_api_url"] == "<unset>"
    assert config["api_url"] == "https://sandbox.wompi.co/v1"
    assert config["confirmation_url"] == "https://shop.example/confirmacion-pago.html"
    assert config["webhook_url"] == "https://shop.example/api/pagos/webhook"
