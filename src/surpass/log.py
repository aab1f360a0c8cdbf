import logging
import threading


### CLASSES ###
class Colors:
  """ANSI escapes used by the console formatter"""

  reset = "\033[0m"
  grey = "\033[90m"
  pink = "\033[38;5;204m"
  green = "\033[38;5;47m"
  blue = "\033[38;5;33m"
  yellow = "\033[38;5;226m"
  red = "\033[38;5;1m"
  bold_red = "\x1b[31;1m"


class SurpassFormatter(logging.Formatter):
  """Console formatter with a marker per level; warnings and worse also
  carry a timestamp and the emitting source line.

  NOTE:
    ``[+] logging.DEBUG``: Fine grained sampling info (per-exchange, per-trigger messages)

    ``[*] logging.INFO``: Key info about the simulation setup and progress

    ``[-] logging.WARNING``: Non-severe problems such as duplicated table keys

    ``[!] logging.ERROR``: Severe problems, e.g. missing input files or bad config keywords

    ``[!] logging.CRITICAL``: Conditions that stop the simulation
  """

  log_format_detailed = f"{Colors.grey}%(asctime)s{Colors.reset} %(message)s {Colors.pink}(%(filename)s:%(lineno)d){Colors.reset}"
  log_format_basic = "%(message)s"

  FORMATS = {
    logging.DEBUG: f"{Colors.green}[+]{Colors.reset} {log_format_basic}",
    logging.INFO: f"{Colors.blue}[*]{Colors.reset} {log_format_basic}",
    logging.WARNING: f"{Colors.yellow}[-]{Colors.reset} {log_format_detailed}",
    logging.ERROR: f"{Colors.red}[!]{Colors.reset} {log_format_detailed}",
    logging.CRITICAL: f"{Colors.bold_red}[!]{Colors.reset} {log_format_detailed}",
  }

  def format(self, record):
    log_fmt = self.FORMATS.get(record.levelno, self.FORMATS[logging.INFO])
    return logging.Formatter(log_fmt).format(record)


class LockedStreamHandler(logging.StreamHandler):
  """Stream handler that shares :obj:`log_lock` with the file observers,
  so records emitted by concurrent replicas never interleave with each
  other or with observer rows written to the same terminal."""

  def emit(self, record):
    with log_lock:
      super().emit(record)


### GLOBALS ###
log_lock = threading.RLock()

logger = logging.getLogger("surpass")
logger.setLevel(logging.DEBUG)

# create console handler with a higher log level
ch = LockedStreamHandler()
ch.setLevel(logging.DEBUG)
ch.setFormatter(SurpassFormatter())
logger.addHandler(ch)


### FUNCTIONS ###
def set_level(level):
  """Sets the level of the package logger and its console handler.

  Parameters:
    level: Either a ``logging`` level constant or its name, e.g. ``"INFO"``
  """
  if isinstance(level, str):
    level = logging.getLevelName(level.upper())
    if not isinstance(level, int):
      raise ValueError(f"Unknown logging level: {level}")
  logger.setLevel(level)
  ch.setLevel(level)


def get_channel(name: str) -> logging.Logger:
  """Returns a child logger, e.g. ``get_channel("movers")`` gives ``surpass.movers``."""
  return logger.getChild(name)


def mute(name: str):
  """Silences a single channel without touching the others."""
  get_channel(name).disabled = True


def unmute(name: str):
  get_channel(name).disabled = False
