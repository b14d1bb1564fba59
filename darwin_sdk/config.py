"""Configuration for darwin_sdk.

Environment-backed settings are read lazily so tests and callers can change
``os.environ`` at runtime. The JSON config file (``darwin.config.json``) holds
the per-project task definition.
"""

import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from darwin_sdk.exceptions import ConfigFileError

load_dotenv()

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = 'darwin.config.json'
DEFAULT_MODEL = 'google/gemini-3-flash-preview'


class Config:
	"""Lazy environment configuration; every property re-reads the environment."""

	@property
	def DARWIN_LOGGING_LEVEL(self) -> str:
		return os.getenv('DARWIN_LOGGING_LEVEL', 'info').lower()

	@property
	def DARWIN_SETUP_LOGGING(self) -> bool:
		return os.getenv('DARWIN_SETUP_LOGGING', 'true').lower()[:1] in 'ty1'

	@property
	def BROWSERBASE_API_KEY(self) -> Optional[str]:
		return os.getenv('BROWSERBASE_API_KEY') or None

	@property
	def BROWSERBASE_PROJECT_ID(self) -> Optional[str]:
		return os.getenv('BROWSERBASE_PROJECT_ID') or None

	@property
	def DARWIN_SESSION_RETENTION_SECONDS(self) -> float:
		return float(os.getenv('DARWIN_SESSION_RETENTION_SECONDS', '3600'))

	@property
	def DARWIN_SESSION_SWEEP_INTERVAL_SECONDS(self) -> float:
		return float(os.getenv('DARWIN_SESSION_SWEEP_INTERVAL_SECONDS', '1800'))

	@property
	def DARWIN_CLOSE_TELEMETRY_TIMEOUT_SECONDS(self) -> float:
		return float(os.getenv('DARWIN_CLOSE_TELEMETRY_TIMEOUT_SECONDS', '3.0'))


CONFIG = Config()


class DarwinConfig(BaseModel):
	"""Contents of darwin.config.json."""

	website: str = Field(min_length=1)
	task: str = Field(min_length=1)
	model: Optional[str] = None
	max_steps: Optional[int] = Field(None, alias='maxSteps')
	env: Optional[Literal['LOCAL', 'BROWSERBASE']] = None
	api_key: Optional[str] = Field(None, alias='apiKey')
	project_id: Optional[str] = Field(None, alias='projectId')
	verbose: Optional[Literal[0, 1, 2]] = None
	system_prompt: Optional[str] = Field(None, alias='systemPrompt')

	model_config = ConfigDict(extra='ignore', populate_by_name=True)


def _config_path(config_path: Optional[str | Path]) -> Path:
	return Path(config_path) if config_path else Path.cwd() / CONFIG_FILE_NAME


def load_config(config_path: Optional[str | Path] = None) -> DarwinConfig:
	"""Load and validate a darwin.config.json file."""
	path = _config_path(config_path)
	if not path.exists():
		raise ConfigFileError(
			f'Config file not found: {path}\n'
			'Create a darwin.config.json file with your website and task configuration.'
		)
	try:
		raw = json.loads(path.read_text(encoding='utf-8'))
	except json.JSONDecodeError as e:
		raise ConfigFileError(f'Invalid JSON in config file: {path}') from e
	if not isinstance(raw, dict):
		raise ConfigFileError(f'Config file must contain a JSON object: {path}')
	for required in ('website', 'task'):
		if not raw.get(required):
			raise ConfigFileError(f"Config must include '{required}' field")
	try:
		return DarwinConfig.model_validate(raw)
	except ValidationError as e:
		raise ConfigFileError(f'Invalid config file {path}: {e}') from e


def save_config(config: DarwinConfig, config_path: Optional[str | Path] = None) -> Path:
	path = _config_path(config_path)
	payload = config.model_dump(by_alias=True, exclude_none=True)
	path.write_text(json.dumps(payload, indent=2), encoding='utf-8')
	return path


def create_default_config(config_path: Optional[str | Path] = None) -> Path:
	"""Write a starter config file; refuses to overwrite an existing one."""
	path = _config_path(config_path)
	if path.exists():
		raise ConfigFileError(f'Config file already exists: {path}')
	default = DarwinConfig(
		website='https://example.com',
		task='Click the sign up button and fill out the registration form',
		model=DEFAULT_MODEL,
		max_steps=20,
		env='LOCAL',
		verbose=1,
	)
	save_config(default, path)
	logger.info(f'Created default config file: {path}')
	return path


def to_task_config(config: DarwinConfig, **overrides):
	"""Convert a file config into a TaskConfig, dropping unset fields so model defaults apply."""
	from darwin_sdk.agent.views import TaskConfig

	data = config.model_dump(exclude_none=True)
	data.update({k: v for k, v in overrides.items() if v is not None})
	return TaskConfig(**data)
