"""Message handlers for the ssam-replicate dev server plugin"""

from handlers.helpers import LOG_EVENT, WARN_EVENT, prefix, remove_ansi, ssam_log, ssam_warn

__all__ = ["LOG_EVENT", "WARN_EVENT", "prefix", "remove_ansi", "ssam_log", "ssam_warn"]
