# tests/test_settings.py
import pytest
from pydantic import ValidationError

from conftest import make_settings


class TestSettings:
    def test_default_admin_is_refused_in_production(self):
        with pytest.raises(ValidationError):
            make_settings(environment="production")

    def test_explicit_admin_is_accepted_in_production(self):
        settings = make_settings(environment="production", admin_id="ops-admin-7f3c")
        assert settings.admin_id == "ops-admin-7f3c"
        assert settings.mongodb_timeout_ms == 5000

    def test_default_admin_is_fine_outside_production(self):
        assert make_settings().admin_id == "admin"
