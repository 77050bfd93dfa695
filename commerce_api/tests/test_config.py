"""Tests for commerce_api/commerce_api/config.py

Covers:
- Defaults and the COMMERCE_ environment prefix
- CORS wildcard validation and secret masking
- Stripe configuration detection and the price table
"""

from __future__ import annotations

import pytest
from commerce_core.billing.plans import Plan
from pydantic import ValidationError

from commerce_api.config import APISettings, PlatformEnv


class TestAPISettings:
    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.delenv("COMMERCE_PLATFORM_ENV", raising=False)
        settings = APISettings(_env_file=None)
        assert settings.platform_env == PlatformEnv.DEV
        assert settings.tenant_slug_header == "X-Tenant-Slug"
        assert settings.trial_period_days == 7
        assert settings.stripe_configured is False

    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("COMMERCE_BASE_DOMAIN", "academy.example")
        monkeypatch.setenv("COMMERCE_TRIAL_PERIOD_DAYS", "14")
        settings = APISettings(_env_file=None)
        assert settings.base_domain == "academy.example"
        assert settings.trial_period_days == 14

    def test_wildcard_origin_with_credentials_rejected(self) -> None:
        with pytest.raises(ValidationError, match="wildcard"):
            APISettings(_env_file=None, cors_origins=["*"], cors_allow_credentials=True)

    def test_wildcard_origin_without_credentials_allowed(self) -> None:
        settings = APISettings(_env_file=None, cors_origins=["*"], cors_allow_credentials=False)
        assert settings.cors_origins == ["*"]

    def test_secrets_are_masked(self, settings) -> None:
        assert "whsec_platform_test" not in repr(settings)
        assert settings.stripe_webhook_secret.get_secret_value() == "whsec_platform_test"


class TestStripeConfiguration:
    def test_fully_configured(self, settings) -> None:
        assert settings.stripe_configured is True

    @pytest.mark.parametrize(
        "missing",
        [
            "stripe_secret_key",
            "stripe_webhook_secret",
            "stripe_connect_webhook_secret",
            "stripe_price_id_growth",
        ],
    )
    def test_any_missing_value_disables_payments(self, settings_factory, missing) -> None:
        assert settings_factory(**{missing: ""}).stripe_configured is False

    def test_price_table(self, settings) -> None:
        table = settings.price_table()
        assert table.price_for_plan(Plan.SCALE) == "price_scale"
        assert table.plan_for_price("price_starter") == Plan.STARTER
        assert table.plan_for_price("price_unknown") is None
