"""Settings for branchgpt front ends.

Settings are resolved from three sources, later sources winning:

1. Defaults of :class:`BranchGPTSettings`
2. A YAML file (``--config`` option or the ``BRANCHGPT_CONFIG`` variable)
3. ``BRANCHGPT_<FIELD>`` environment variables (e.g. ``BRANCHGPT_MODEL``)

String values in the YAML file may reference the environment:

- ``${VAR_NAME}`` - Required variable
- ``${VAR_NAME:-default}`` - Variable with default value

Example:
    ```yaml
    provider: openai
    model: gpt-4
    temperature: 0.7
    api_key: ${OPENAI_API_KEY}
    conversations_dir: ${HOME}/conversations
    ```
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Union

import yaml

from branchgpt.exceptions import BranchGPTError, ConfigurationError
from branchgpt.conversations.parameters import CompletionParameters
from branchgpt.llm.base import LLMConfig

ENV_PREFIX = "BRANCHGPT_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG"

logger = logging.getLogger(__name__)


@dataclass
class BranchGPTSettings:
    """Resolved settings.

    Attributes:
        provider: Completion provider name ('openai' or 'echo')
        model: Default model for new conversations
        temperature: Default sampling temperature
        n: Default number of samples per completion
        max_tokens: Default maximum tokens per response
        api_key: Provider API key (OpenAI falls back to OPENAI_API_KEY)
        api_base: Custom API endpoint
        timeout: Provider request timeout in seconds
        conversations_dir: Directory holding conversation files
        log_level: Logging level name
    """
    provider: str = "openai"
    model: str = "gpt-3.5-turbo"
    temperature: float = 1.0
    n: int = 1
    max_tokens: int = 512
    api_key: str | None = None
    api_base: str | None = None
    timeout: float = 60.0
    conversations_dir: str = "~/.branchgpt"
    log_level: str = "WARNING"

    @classmethod
    def from_dict(cls, config_dict: Mapping[str, Any]) -> "BranchGPTSettings":
        """Create settings from a dictionary, ignoring unknown keys.

        Raises:
            ConfigurationError: If a value cannot be converted
        """
        settings = cls()
        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in config_dict or config_dict[f.name] is None:
                continue
            values[f.name] = _coerce(f.name, config_dict[f.name], type(getattr(settings, f.name)))
        return replace(settings, **values)

    @classmethod
    def load(
        cls,
        config_path: Union[str, Path, None] = None,
        environ: Mapping[str, str] | None = None,
    ) -> "BranchGPTSettings":
        """Resolve settings from defaults, a YAML file and the environment.

        Args:
            config_path: YAML file; defaults to ``$BRANCHGPT_CONFIG`` if set
            environ: Environment mapping (``os.environ`` by default)

        Raises:
            ConfigurationError: If the file cannot be read or holds bad values
        """
        environ = os.environ if environ is None else environ
        config_path = config_path or environ.get(CONFIG_ENV_VAR)

        values: Dict[str, Any] = {}
        if config_path:
            values.update(_read_config_file(Path(config_path), environ))

        for f in fields(cls):
            env_name = f"{ENV_PREFIX}{f.name.upper()}"
            if env_name in environ:
                values[f.name] = environ[env_name]

        return cls.from_dict(values)

    def clone(self, **overrides: Any) -> "BranchGPTSettings":
        return replace(self, **overrides)

    def completion_parameters(self) -> CompletionParameters:
        """Default completion parameters for new conversations.

        Raises:
            ConfigurationError: If the configured values are invalid
        """
        try:
            return CompletionParameters.from_dict({
                "temperature": self.temperature,
                "n": self.n,
                "model": self.model,
                "max_tokens": self.max_tokens,
            })
        except BranchGPTError as e:
            raise ConfigurationError(f"Invalid completion settings: {e}", context=e.context) from e

    def provider_config(self) -> LLMConfig:
        """Configuration for :func:`branchgpt.llm.create_llm_provider`."""
        return LLMConfig(
            provider=self.provider,
            model=self.model,
            api_key=self.api_key,
            api_base=self.api_base,
            timeout=self.timeout,
        )

    @property
    def conversations_path(self) -> Path:
        return Path(self.conversations_dir).expanduser()


def _coerce(name: str, value: Any, target: type) -> Any:
    # Optional settings default to None and hold strings
    if target is type(None):
        return str(value)
    try:
        return target(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for setting '{name}': {value!r}",
            context={"setting": name, "value": value},
        ) from e


def _read_config_file(path: Path, environ: Mapping[str, str]) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.expanduser().read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigurationError(
            f"Configuration file not readable: {e}",
            context={"path": str(path)},
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid configuration file: {e}",
            context={"path": str(path)},
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            "Configuration file must contain a mapping",
            context={"path": str(path)},
        )
    logger.debug(f"Loaded settings from {path}")
    return {key: _resolve_environment_vars(value, environ) for key, value in data.items()}


def _resolve_environment_vars(value: Any, environ: Mapping[str, str]) -> Any:
    """Resolve ``${VAR}`` and ``${VAR:-default}`` references."""
    if not (isinstance(value, str) and value.startswith("${") and value.endswith("}")):
        return value

    var_expr = value[2:-1]
    if ":-" in var_expr:
        var_name, default_value = var_expr.split(":-", 1)
        return environ.get(var_name, default_value)

    if var_expr in environ:
        return environ[var_expr]
    prefixed_var = f"{ENV_PREFIX}{var_expr}"
    if prefixed_var in environ:
        return environ[prefixed_var]
    raise ConfigurationError(
        f"Environment variable not found: {var_expr}",
        context={"variable": var_expr},
    )
