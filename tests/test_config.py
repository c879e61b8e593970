"""Tests for publish configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from provider_publisher.config import ConfigurationError, PublishConfig
from provider_publisher.registry.types import DEFAULT_REGISTRY_URL

ARMOR = "-----BEGIN PGP PUBLIC KEY BLOCK-----\nabc\n-----END PGP PUBLIC KEY BLOCK-----\n"


@pytest.fixture
def action_env(tmp_path: Path) -> dict[str, str]:
    """Environment as set by a GitHub Actions step."""
    return {
        "INPUT_ORGANIZATION-NAME": "acme",
        "INPUT_ORGANIZATION-API-TOKEN": "token.atlasv1.value",
        "INPUT_PROVIDER-DIRECTORY": "dist",
        "INPUT_GPG-KEY": ARMOR,
        "GITHUB_WORKSPACE": str(tmp_path),
    }


class TestFromEnv:
    """Tests for PublishConfig.from_env."""

    def test_action_inputs(self, action_env: dict[str, str], tmp_path: Path) -> None:
        config = PublishConfig.from_env(action_env)

        assert config.organization_name == "acme"
        assert config.organization_api_token == "token.atlasv1.value"
        assert config.namespace == "acme"
        assert config.registry_url == DEFAULT_REGISTRY_URL
        assert config.provider_dir == (tmp_path / "dist").resolve()
        assert config.repository_root == tmp_path.resolve()

    def test_gpg_key_kept_verbatim(self, action_env: dict[str, str]) -> None:
        """Armor is matched byte for byte, so surrounding whitespace survives."""
        config = PublishConfig.from_env(action_env)

        assert config.gpg_key == ARMOR

    def test_plain_env_fallback(self, tmp_path: Path) -> None:
        """Non-GitHub CI can use TFE_* variables."""
        environ = {
            "TFE_ORGANIZATION": "acme",
            "TFE_TOKEN": "t",
            "TFE_NAMESPACE": "acme-public",
            "TFE_URL": "https://tfe.example.com",
            "GPG_KEY": ARMOR,
            "GITHUB_WORKSPACE": str(tmp_path),
        }

        config = PublishConfig.from_env(environ)

        assert config.namespace == "acme-public"
        assert config.registry_config().base_url == "https://tfe.example.com"

    def test_action_input_wins_over_plain(self, action_env: dict[str, str]) -> None:
        action_env["TFE_ORGANIZATION"] = "other"

        assert PublishConfig.from_env(action_env).organization_name == "acme"

    def test_overrides_win(self, action_env: dict[str, str], tmp_path: Path) -> None:
        """Explicit values beat the environment; None is ignored."""
        config = PublishConfig.from_env(
            action_env, organization_name="override", namespace=None, upload_concurrency=4
        )

        assert config.organization_name == "override"
        assert config.namespace == "override"
        assert config.upload_concurrency == 4

    def test_blank_values_ignored(self, action_env: dict[str, str]) -> None:
        action_env["INPUT_NAMESPACE"] = "   "

        assert PublishConfig.from_env(action_env).namespace == "acme"

    def test_to_context(self, action_env: dict[str, str]) -> None:
        context = PublishConfig.from_env(action_env).to_context()

        assert context.organization == "acme"
        assert context.gpg_key == ARMOR
        assert context.upload_concurrency == 1
        assert "BEGIN PGP" not in repr(context)


class TestValidation:
    """Tests for PublishConfig validation."""

    @pytest.mark.parametrize(
        ("missing", "message"),
        [
            ("INPUT_ORGANIZATION-NAME", "organization-name"),
            ("INPUT_ORGANIZATION-API-TOKEN", "organization-api-token"),
            ("INPUT_GPG-KEY", "gpg-key"),
            ("GITHUB_WORKSPACE", "GITHUB_WORKSPACE"),
        ],
    )
    def test_required_inputs(
        self, action_env: dict[str, str], missing: str, message: str
    ) -> None:
        del action_env[missing]

        with pytest.raises(ConfigurationError, match=message):
            PublishConfig.from_env(action_env)

    def test_dry_run_needs_no_token(self, action_env: dict[str, str]) -> None:
        del action_env["INPUT_ORGANIZATION-API-TOKEN"]

        config = PublishConfig.from_env(action_env, dry_run=True)

        assert config.dry_run is True

    def test_token_not_in_repr(self, action_env: dict[str, str]) -> None:
        config = PublishConfig.from_env(action_env)

        assert "atlasv1" not in repr(config)
        assert "BEGIN PGP" not in repr(config)

    def test_registry_url_scheme(self, action_env: dict[str, str]) -> None:
        with pytest.raises(ConfigurationError, match="registry_url"):
            PublishConfig.from_env(action_env, registry_url="app.terraform.io")

    @pytest.mark.parametrize("concurrency", [0, 17])
    def test_upload_concurrency_bounds(
        self, action_env: dict[str, str], concurrency: int
    ) -> None:
        with pytest.raises(ConfigurationError, match="upload_concurrency"):
            PublishConfig.from_env(action_env, upload_concurrency=concurrency)

    @pytest.mark.parametrize("field", ["request_timeout_s", "upload_timeout_s"])
    def test_timeouts_positive(self, action_env: dict[str, str], field: str) -> None:
        with pytest.raises(ConfigurationError, match=field):
            PublishConfig.from_env(action_env, **{field: 0})

    def test_configuration_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            PublishConfig(organization_name="")

    def test_workspace_path_accepted(self, tmp_path: Path) -> None:
        config = PublishConfig(
            organization_name="acme",
            organization_api_token="t",
            gpg_key=ARMOR,
            workspace=tmp_path,
        )

        assert isinstance(config.repository_root, Path)
        assert config.provider_dir == tmp_path.resolve()
