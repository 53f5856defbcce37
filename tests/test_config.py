"""
Tests for stack.yml loading — both layouts, stage mapping, errors.
"""

import logging
import textwrap
from pathlib import Path

import pytest

from stackfix.core.config.loader import (
    ConfigError,
    extract_environments,
    find_stack_file,
    load_stack_config,
    parse_stack_config,
    stack_root,
)
from stackfix.core.models.fix import Platform, Stage


class TestLoadStackConfig:
    def test_top_level_layout(self, stack_file: Path):
        config = load_stack_config(stack_file)
        assert config.name == "shop"
        assert list(config.environments) == ["dev", "staging", "prod"]
        prod = config.get_environment("prod")
        assert prod.domain == "shop.example.org"
        assert prod.os == Platform.UBUNTU
        assert prod.stage == Stage.PROD

    def test_nested_layout(self, tmp_path: Path):
        path = tmp_path / "stack.yml"
        path.write_text(textwrap.dedent("""\
            name: shop
            environments:
              dev:
              production:
                domain: shop.io
                provider: aws
                settings:
                  aws:
                    region: eu-west-1
            secrets:
              backend: dotenv
              path: secrets/.env
        """))
        config = load_stack_config(path)
        assert list(config.environments) == ["dev", "production"]
        assert config.for_stage("prod").provider == "aws"
        assert config.secrets.backend == "dotenv"

    def test_bare_dev_key(self):
        config = parse_stack_config({"name": "shop", "dev": None})
        assert "dev" in config.environments

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_stack_config(tmp_path / "stack.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "stack.yml"
        path.write_text("name: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_stack_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "stack.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_stack_config(path)

    def test_missing_name(self):
        with pytest.raises(ConfigError, match="Invalid stack configuration"):
            parse_stack_config({"dev": {}})

    def test_unknown_os_rejected(self):
        with pytest.raises(ConfigError):
            parse_stack_config({"name": "shop", "prod": {"os": "beos"}})

    def test_unmapped_environment_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = parse_stack_config({"name": "shop", "qa": {"domain": "qa.shop.io"}})
        assert "qa" in config.environments
        assert "does not map to a stage" in caplog.text

    def test_two_environments_on_one_stage_rejected(self):
        data = {"name": "shop", "staging-eu": {"host": "10.0.0.5"}, "staging-us": {"host": "10.0.0.6"}}
        with pytest.raises(ConfigError, match="'staging-eu' and 'staging-us' .* both map"):
            parse_stack_config(data)

    def test_one_environment_per_stage_accepted(self):
        config = parse_stack_config({"name": "shop", "dev": {}, "staging-eu": {}, "production": {}})
        assert config.for_stage("staging").name == "staging-eu"
        assert config.for_stage("prod").name == "production"


class TestExtractEnvironments:
    def test_duplicate_across_layouts(self):
        with pytest.raises(ConfigError, match="declared twice"):
            extract_environments({"environments": {"prod": {}}, "prod": {}})

    def test_scalar_keys_ignored(self):
        assert extract_environments({"name": "x", "owner": "ops", "dev": {}}) == {"dev": {}}


class TestFindStackFile:
    def test_walks_up(self, stack_file: Path):
        nested = stack_file.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_stack_file(nested) == stack_file.resolve()

    def test_not_found(self, tmp_path: Path):
        assert find_stack_file(tmp_path) is None or find_stack_file(tmp_path).parent != tmp_path

    def test_stack_root(self, stack_file: Path):
        assert stack_root(stack_file) == stack_file.parent.resolve()
