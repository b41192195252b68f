"""Summarization settings: defaults, overlaid by data/config.json, overlaid by env vars."""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from summary_reader.utils.paths import ensure_dir_exists, get_config_path, get_project_root

# Load .env file from project root
load_dotenv(get_project_root() / ".env")

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = (
    "You are a helpful assistant that creates concise, accurate summaries of text content. "
    "Maintain the key information and main ideas while reducing the length according to the "
    "specified ratio. Keep the summary coherent and well-structured."
)

class SummarizationConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              protected_namespaces=())

    api_key: str = ""
    model_name: str = "gemini-1.5-flash"
    prompt: str = DEFAULT_PROMPT
    default_ratio: float = 0.3
    max_retries: int = 3
    extraction_timeout: float = 120.0  # seconds, for chapter extraction requests

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if os.getenv("GOOGLE_API_KEY"):
        overrides["api_key"] = os.getenv("GOOGLE_API_KEY")
    if os.getenv("SUMMARY_MODEL_NAME"):
        overrides["model_name"] = os.getenv("SUMMARY_MODEL_NAME")
    if os.getenv("SUMMARY_PROMPT"):
        overrides["prompt"] = os.getenv("SUMMARY_PROMPT")

    ratio = os.getenv("DEFAULT_RATIO")
    if ratio:
        try:
            value = float(ratio)
            if 0 < value <= 1:
                overrides["default_ratio"] = value
        except ValueError:
            logger.warning("Ignoring invalid DEFAULT_RATIO=%r", ratio)

    retries = os.getenv("SUMMARY_MAX_RETRIES")
    if retries:
        try:
            value = int(retries)
            if value >= 0:
                overrides["max_retries"] = value
        except ValueError:
            logger.warning("Ignoring invalid SUMMARY_MAX_RETRIES=%r", retries)

    timeout = os.getenv("EXTRACTION_TIMEOUT")
    if timeout:
        try:
            value = float(timeout)
            if value > 0:
                overrides["extraction_timeout"] = value
        except ValueError:
            logger.warning("Ignoring invalid EXTRACTION_TIMEOUT=%r", timeout)

    return overrides


class ConfigService:
    """Environment variables always win over the file; updates only touch the file."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else get_config_path()

    def _load_file(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s: %s", self.config_path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _file_config(self) -> SummarizationConfig:
        return SummarizationConfig.model_validate(self._load_file())

    def save_config(self, config: SummarizationConfig) -> None:
        ensure_dir_exists(self.config_path.parent)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(config.to_json(), f, indent=2, ensure_ascii=False)

    def get_config(self) -> SummarizationConfig:
        if not self.config_path.exists():
            self.save_config(SummarizationConfig())
        config = self._file_config()
        return config.model_copy(update=_env_overrides())

    def update_config(self, updates: Dict[str, Any]) -> SummarizationConfig:
        # Accept both snake_case and camelCase keys
        updates = {to_camel(k) if k in SummarizationConfig.model_fields else k: v
                   for k, v in updates.items()}
        merged = {**self._file_config().to_json(), **updates}
        self.save_config(SummarizationConfig.model_validate(merged))
        return self.get_config()
