"""User-visible toast notifications collected for the presentation layer"""
import logging

logger = logging.getLogger(__name__)

LEVEL_SUCCESS = 'success'
LEVEL_ERROR = 'error'
LEVEL_INFO = 'info'


class Toast:
    def __init__(self, level, message, description=None, extra=None):
        self.level = level
        self.message = message
        self.description = description
        self.extra = extra or {}

    def __repr__(self):
        return f"Toast({self.level!r}, {self.message!r})"


class Toaster:
    """Queue of pending toasts; the UI drains it after each action"""

    def __init__(self):
        self.toasts = []

    def _push(self, level, message, description=None, **extra):
        toast = Toast(level, message, description, extra)
        self.toasts.append(toast)
        return toast

    def success(self, message, description=None, **extra):
        return self._push(LEVEL_SUCCESS, message, description, **extra)

    def info(self, message, description=None, **extra):
        return self._push(LEVEL_INFO, message, description, **extra)

    def error(self, message, description=None, exc=None, **extra):
        if exc is not None:
            logger.error(f"{message}: {str(exc)}")
        return self._push(LEVEL_ERROR, message, description, **extra)

    def drain(self):
        toasts, self.toasts = self.toasts, []
        return toasts

    @property
    def errors(self):
        return [t for t in self.toasts if t.level == LEVEL_ERROR]

    @property
    def last(self):
        return self.toasts[-1] if self.toasts else None
