class DarwinError(Exception):
	"""Base class for all darwin_sdk errors."""


class AgentConfigurationError(DarwinError):
	"""Raised when the agent cannot be configured, e.g. missing remote credentials."""


class AgentNotInitializedError(DarwinError):
	"""Raised when execute() is called before init()."""


class LogCaptureActiveError(DarwinError):
	"""Raised when log capture is started while another session still holds it."""


class LogCaptureTokenError(DarwinError):
	"""Raised when log capture is stopped with a token that does not own it."""


class ConfigFileError(DarwinError):
	"""Raised when darwin.config.json is missing, malformed or incomplete."""
