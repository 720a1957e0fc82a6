"""
This module contains settings for the qsteady logging and the default
steady-state solver options.
"""
import os

__all__ = ['settings']


def _environ_bool(var, default=False):
    """
    Get a boolean value from the environment variable `var`.  The false-y
    values are '0', 'false', 'none' and empty string, insensitive to case.
    """
    from_env = os.environ.get(var)
    if from_env is None:
        return default
    return from_env.lower() not in {'0', 'false', 'none', ''}


class Settings:
    """
    Qsteady's settings and options.
    """
    def __init__(self):
        self.steadystate = None  # set in qsteady.solver.options
        self._debug = _environ_bool("QSTEADY_DEBUG")
        self._log_handler = os.environ.get("QSTEADY_LOG_HANDLER", "default")

    @property
    def debug(self) -> bool:
        """ Whether loggers are created at the ``DEBUG`` level. """
        return self._debug

    @debug.setter
    def debug(self, value: bool) -> None:
        self._debug = bool(value)

    @property
    def log_handler(self) -> str:
        """
        Policy used by :func:`qsteady.logging_utils.get_logger` to attach
        handlers. One of "default", "basic", "stream" or "null".
        """
        return self._log_handler

    @log_handler.setter
    def log_handler(self, value: str) -> None:
        if value not in {"default", "basic", "stream", "null"}:
            raise ValueError(
                "log_handler must be one of 'default', 'basic', 'stream' "
                "or 'null'"
            )
        self._log_handler = value

    @property
    def ipython(self) -> bool:
        """ Whether qsteady is running in ipython. """
        try:
            __IPYTHON__
            return True
        except NameError:
            return False

    def __str__(self) -> str:
        lines = ["Qsteady settings:"]
        for attr in self.__dir__():
            if not attr.startswith('_') and attr != "steadystate":
                lines.append(f"    {attr}: {self.__getattribute__(attr)}")
        lines.append(f"    steadystate: {self.steadystate!r}")
        return '\n'.join(lines)

    def __repr__(self) -> str:
        return self.__str__()


settings = Settings()
