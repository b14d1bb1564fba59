from darwin_sdk.config import CONFIG
from darwin_sdk.logging_config import setup_logging

# Only set up logging if not embedded in a host that configures its own handlers
if CONFIG.DARWIN_SETUP_LOGGING:
	logger = setup_logging()
else:
	import logging

	logger = logging.getLogger('darwin_sdk')


# --- Lightweight, lazy re-exports ---
_LAZY_EXPORTS = {
	# Agent core
	'BrowserAgent': ('darwin_sdk.agent.service', 'BrowserAgent'),
	'TaskConfig': ('darwin_sdk.agent.views', 'TaskConfig'),
	'ThoughtEntry': ('darwin_sdk.agent.views', 'ThoughtEntry'),
	'FinalResult': ('darwin_sdk.agent.views', 'FinalResult'),
	'ExecutionOutcome': ('darwin_sdk.agent.views', 'ExecutionOutcome'),
	'OverlaySet': ('darwin_sdk.agent.overlays', 'OverlaySet'),
	'normalize_reasoning': ('darwin_sdk.agent.reasoning', 'normalize_reasoning'),
	# Sessions
	'SessionRegistry': ('darwin_sdk.sessions.registry', 'SessionRegistry'),
	'session_registry': ('darwin_sdk.sessions.registry', 'session_registry'),
	'LogCapture': ('darwin_sdk.sessions.capture', 'LogCapture'),
	'SessionEventFeed': ('darwin_sdk.sessions.feed', 'SessionEventFeed'),
	'run_session': ('darwin_sdk.sessions.runner', 'run_session'),
	# Config
	'load_config': ('darwin_sdk.config', 'load_config'),
}


def __getattr__(name: str):
	"""Lazy import mechanism for heavy components."""
	if name in _LAZY_EXPORTS:
		module_path, attr_name = _LAZY_EXPORTS[name]
		from importlib import import_module

		module = import_module(module_path)
		attr = getattr(module, attr_name)
		globals()[name] = attr
		return attr

	raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = ['CONFIG', 'logger', 'setup_logging', *_LAZY_EXPORTS.keys()]
