"""
Loggers of the qsteady modules, set up from ``qsteady.settings``.

``settings.log_handler`` decides where the records go:

- "stream": a handler on stderr whose records carry the process id, so the
  output of the processes of an MPI run can be told apart;
- "basic": the root handlers of ``logging.basicConfig``;
- "null": nowhere, unless the application installs its own handlers;
- "default": "basic" under IPython, "stream" otherwise.
"""

import inspect
import logging

from qsteady.settings import settings

__all__ = ['get_logger']

_STREAM_FORMAT = (
    '[%(asctime)s] %(name)s[%(process)s]: '
    '%(funcName)s: %(levelname)s: %(message)s'
)
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_metalogger = logging.getLogger(__name__)
_metalogger.addHandler(logging.NullHandler())


def _caller_module_name(depth=2):
    try:
        frame = inspect.stack()[depth][0]
        module = inspect.getmodule(frame)
    except Exception:
        _metalogger.warning('Could not find the calling module.',
                            exc_info=True)
        return '<unknown>'
    return module.__name__ if module is not None else '<none>'


def _has_own_handler(logger, kind):
    return any(isinstance(handler, kind) and getattr(handler, '_qsteady', False)
               for handler in logger.handlers)


def _add_own_handler(logger, handler):
    handler._qsteady = True
    logger.addHandler(handler)


def get_logger(name=None):
    """
    Logger named ``name``, with the handlers asked for by
    ``settings.log_handler`` and the ``DEBUG`` level when ``settings.debug``
    is set, ``WARN`` otherwise.  Calling it again for the same name does not
    add handlers twice.

    Parameters
    ----------
    name : str, optional
        Logger name, the name of the calling module by default.
    """
    if name is None:
        name = _caller_module_name()
    logger = logging.getLogger(name)

    policy = settings.log_handler
    if policy == 'default':
        policy = 'basic' if settings.ipython else 'stream'
    _metalogger.debug("Logger %s uses the %s policy.", name, policy)

    if policy == 'basic':
        logging.basicConfig(
            level=logging.DEBUG if settings.debug else logging.WARN
        )
    elif policy == 'stream':
        if not _has_own_handler(logger, logging.StreamHandler):
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter(_STREAM_FORMAT, _DATE_FORMAT)
            )
            _add_own_handler(logger, handler)
        logger.propagate = False
    elif policy == 'null':
        if not _has_own_handler(logger, logging.NullHandler):
            _add_own_handler(logger, logging.NullHandler())

    logger.setLevel(logging.DEBUG if settings.debug else logging.WARN)
    return logger
