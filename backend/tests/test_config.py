"""
Tests for settings validation.
"""
import pytest

from config import ADMIN_ONLY_ROLES, Settings
from domain.policy import ADMIN_PROVISIONED_ROLES


@pytest.mark.unit
class TestSettingsValidation:

    def test_admin_only_roles_follow_the_policy(self):
        assert ADMIN_ONLY_ROLES == {role.value for role in ADMIN_PROVISIONED_ROLES}

    @pytest.mark.parametrize("roles", ["VENDOR,DELIVERY_AGENCY", "admin"])
    def test_admin_provisioned_roles_refused_everywhere(self, roles):
        with pytest.raises(ValueError, match="administrator-provisioned"):
            Settings(self_service_roles=roles, environment="development").validate_production_settings()

    def test_production_requires_jwt_secret(self):
        with pytest.raises(ValueError, match="JWT_SECRET"):
            Settings(environment="production", jwt_secret="").validate_production_settings()

    def test_roles_are_normalised(self):
        assert Settings(self_service_roles=" vendor , rider ,").self_service_roles_list == ["VENDOR", "RIDER"]
