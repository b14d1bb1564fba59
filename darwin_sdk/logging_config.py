import locale
import logging
import sys

from darwin_sdk.config import CONFIG
from darwin_sdk.timing import now_utc_iso, process_start_utc_iso, uptime_seconds

# Sits between WARNING and ERROR so `result` mode shows outcomes and failures only
RESULT_LEVEL = 35

CONSOLE_FORMAT = '%(levelname)-8s [%(name)s] %(utc)s (+%(uptime)s) %(message)s'
RESULT_FORMAT = '%(message)s'

_LEVELS = {
	'debug': logging.DEBUG,
	'info': logging.INFO,
	'result': RESULT_LEVEL,
}

NOISY_LOGGERS = (
	'asyncio',
	'anyio',
	'httpx',
	'httpcore',
	'urllib3',
	'playwright',
	'openai',
	'anthropic._base_client',
	'charset_normalizer',
)


def register_result_level():
	"""Register the RESULT level name and a `logger.result(...)` convenience method.

	Safe to call repeatedly.
	"""
	logging.addLevelName(RESULT_LEVEL, 'RESULT')
	logger_class = logging.getLoggerClass()
	if hasattr(logger_class, 'result'):
		return

	def result(self, message, *args, **kwargs):
		if self.isEnabledFor(RESULT_LEVEL):
			self._log(RESULT_LEVEL, message, args, **kwargs)

	logger_class.result = result


class SafeStreamHandler(logging.StreamHandler):
	"""A logging handler that gracefully handles consoles that can't encode emojis.

	Thought and action lines carry glyphs; on cp1252 consoles the write is
	retried with 'replace' instead of raising UnicodeEncodeError.
	"""

	def emit(self, record):  # type: ignore[override]
		try:
			msg = self.format(record)
			stream = self.stream
			try:
				stream.write(msg + self.terminator)
			except UnicodeEncodeError:
				enc = getattr(stream, 'encoding', None) or locale.getpreferredencoding(False) or 'utf-8'
				stream.write(msg.encode(enc, errors='replace').decode(enc, errors='replace') + self.terminator)
			self.flush()
		except Exception:
			self.handleError(record)


class DarwinFormatter(logging.Formatter):
	"""Adds `utc` and `uptime` fields to every record."""

	def format(self, record):
		record.utc = now_utc_iso()
		record.uptime = f'{uptime_seconds():.3f}s'
		return super().format(record)


def setup_logging(stream=None, log_level=None, force_setup=False):
	"""Configure console logging for darwin_sdk.

	Args:
		stream: Output stream for logs (default: sys.stdout).
		log_level: 'debug', 'info' or 'result' (default: CONFIG.DARWIN_LOGGING_LEVEL)
		force_setup: Replace existing root handlers instead of leaving a host's setup alone
	"""
	register_result_level()
	log_type = (log_level or CONFIG.DARWIN_LOGGING_LEVEL).lower()
	package_logger = logging.getLogger('darwin_sdk')

	root = logging.getLogger()
	if root.hasHandlers() and not force_setup:
		return package_logger

	level = _LEVELS.get(log_type, logging.INFO)
	console = SafeStreamHandler(stream or sys.stdout)
	console.setFormatter(DarwinFormatter(RESULT_FORMAT if level == RESULT_LEVEL else CONSOLE_FORMAT))
	console.setLevel(level)

	root.handlers = [console]
	root.setLevel(level)

	# package records go straight to the console handler; LogCapture attaches here too
	package_logger.propagate = False
	package_logger.handlers = [console]
	package_logger.setLevel(level)
	package_logger.debug(f'Logging initialized at {now_utc_iso()} (process_start={process_start_utc_iso()})')

	for name in NOISY_LOGGERS:
		noisy = logging.getLogger(name)
		noisy.setLevel(logging.ERROR)
		noisy.propagate = False

	return package_logger
