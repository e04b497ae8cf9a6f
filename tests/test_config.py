"""Config loading, lenient numeric settings, startup validation, provider factory."""
from __future__ import annotations

import json

import pytest

from chatbridge.config import (
    ChatBridgeConfig,
    DeepSeekConfig,
    OllamaConfig,
    ProvidersConfig,
    load_config,
    validate_startup,
)
from chatbridge.errors import ConfigurationError
from chatbridge.provider_factory import ProviderFactory
from chatbridge.providers import DeepSeekProvider, OllamaProvider, OpenAICompatibleProvider


class TestModelSettings:
    def test_defaults(self):
        cfg = OllamaConfig()
        assert cfg.model == "llama2"
        assert cfg.base_url == "http://localhost:11434"
        assert cfg.temperature == 0.7
        assert cfg.max_tokens == 4096

    def test_non_numeric_falls_back_to_default(self):
        cfg = OllamaConfig(temperature="warm", max_tokens="lots")
        assert cfg.temperature == 0.7
        assert cfg.max_tokens == 4096

    def test_numeric_strings_parsed(self):
        cfg = OllamaConfig(temperature="0.3", max_tokens="512")
        assert cfg.temperature == 0.3
        assert cfg.max_tokens == 512

    def test_temperature_clamped(self):
        assert OllamaConfig(temperature=5).temperature == 2.0
        assert OllamaConfig(temperature=-1).temperature == 0.0

    def test_non_positive_max_tokens_uses_default(self):
        assert OllamaConfig(max_tokens=0).max_tokens == 4096

    def test_nan_uses_default(self):
        assert OllamaConfig(temperature="nan").temperature == 0.7


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(str(tmp_path / "absent.json"), environ={})
        assert cfg.providers.default == "deepseek"
        assert cfg.web.port == 3001

    def test_camel_case_file_keys(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "providers": {"default": "ollama", "openaiCompatible": {"baseUrl": "http://gpu:8000/v1"}},
            "skills": {"webSearchApiKey": "brave"},
        }))
        cfg = load_config(str(path), environ={})
        assert cfg.providers.default == "ollama"
        assert cfg.providers.openai_compatible.base_url == "http://gpu:8000/v1"
        assert cfg.skills.web_search_api_key == "brave"

    def test_conventional_env_names(self, tmp_path):
        cfg = load_config(str(tmp_path / "absent.json"), environ={
            "DEEPSEEK_API_KEY": "sk-1",
            "MODEL_PROVIDER": "openai-compatible",
            "OLLAMA_MODEL": "mistral",
            "LOCAL_MODEL_TEMPERATURE": "not-a-number",
        })
        assert cfg.providers.deepseek.api_key == "sk-1"
        assert cfg.providers.default == "openai-compatible"
        assert cfg.providers.ollama.model == "mistral"
        assert cfg.providers.openai_compatible.temperature == 0.7

    def test_file_beats_conventional_env(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"providers": {"default": "ollama"}}))
        cfg = load_config(str(path), environ={"MODEL_PROVIDER": "deepseek"})
        assert cfg.providers.default == "ollama"

    def test_prefixed_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"web": {"port": 4000}}))
        monkeypatch.setenv("CHATBRIDGE_WEB__PORT", "5000")
        assert load_config(str(path), environ={}).web.port == 5000

    def test_unreadable_file_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert load_config(str(path), environ={}).providers.default == "deepseek"


class TestValidateStartup:
    def test_valid_local_config(self, local_config):
        validate_startup(local_config)

    def test_collects_every_error(self):
        cfg = ChatBridgeConfig()
        cfg.providers.default = "mystery"
        cfg.maintenance.cleanup_cron = "every day"
        cfg.log.level = "LOUD"
        with pytest.raises(ConfigurationError) as exc:
            validate_startup(cfg)
        message = str(exc.value)
        assert "mystery" in message
        assert "cleanup_cron" in message
        assert "LOUD" in message

    def test_deepseek_default_requires_key(self):
        cfg = ChatBridgeConfig()
        cfg.providers.deepseek.api_key = ""
        with pytest.raises(ConfigurationError, match="DEEPSEEK_API_KEY"):
            validate_startup(cfg)


class TestProviderFactory:
    def test_creates_each_provider(self):
        factory = ProviderFactory(ProvidersConfig(deepseek=DeepSeekConfig(api_key="k")))
        assert isinstance(factory.create_provider("deepseek"), DeepSeekProvider)
        assert isinstance(factory.create_provider("ollama"), OllamaProvider)
        assert isinstance(factory.create_provider("openai-compatible"), OpenAICompatibleProvider)

    def test_omitted_type_uses_default(self):
        factory = ProviderFactory(ProvidersConfig(default="ollama"))
        assert isinstance(factory.create_provider(), OllamaProvider)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError, match="Unknown provider type: bogus"):
            ProviderFactory(ProvidersConfig()).create_provider("bogus")

    def test_deepseek_without_key(self):
        with pytest.raises(ConfigurationError):
            ProviderFactory(ProvidersConfig()).create_provider("deepseek")

    def test_model_config_resolved_from_settings(self):
        factory = ProviderFactory(ProvidersConfig(ollama=OllamaConfig(model="phi3", temperature=1.5)))
        provider = factory.create_provider("ollama")
        assert provider.model_config.model == "phi3"
        assert provider.model_config.temperature == 1.5

    def test_available_providers_static(self):
        providers = ProviderFactory.get_available_providers()
        assert [(p.type, p.name) for p in providers] == [
            ("deepseek", "DeepSeek (Remote API)"),
            ("ollama", "Ollama (Local)"),
            ("openai-compatible", "OpenAI Compatible (Local)"),
        ]


class TestLogRedaction:
    def test_api_keys_and_bearer_tokens_masked(self):
        from chatbridge.log import redact

        assert redact("auth failed for sk-abcdef1234567890") == "auth failed for ***"
        assert redact("Authorization: Bearer abc.def.ghi-123") == "Authorization: Bearer ***"
        assert redact('{"api_key": "secretvalue"}') == '{"api_key": "***"}'
        assert redact("nothing to hide") == "nothing to hide"
