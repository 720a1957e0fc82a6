from __future__ import annotations

from ..settings import settings
from typing import Any
import types

__all__ = ["QsteadyOptions"]


class QsteadyOptions:
    """
    Base class of qsteady's options: a dict of options with a fixed set of
    keys, whose defaults are in the class ``_options`` dict.

    Used as a context manager, an instance replaces the global default found
    in ``qsteady.settings`` under ``_settings_name`` until the block exits.
    """

    _options: dict[str, Any] = {}
    _settings_name = None  # Where the default is in settings

    def __init__(self, **options):
        self.options = self._options.copy()
        for key in set(options) & set(self.options):
            self[key] = options.pop(key)
        if options:
            raise KeyError(f"Options {set(options)} are not supported.")

    def __contains__(self, key: str) -> bool:
        return key in self.options

    def __getitem__(self, key: str) -> Any:
        # Let the dict catch the KeyError
        return self.options[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key not in self.options:
            raise KeyError(f"Options {key} is not supported.")
        self.options[key] = value

    def copy(self) -> QsteadyOptions:
        return self.__class__(**self.options)

    def update(self, other: dict | None = None, **kwargs) -> None:
        if isinstance(other, QsteadyOptions):
            other = other.options
        for key, value in {**(other or {}), **kwargs}.items():
            self[key] = value

    def __repr__(self, full: bool = True) -> str:
        out = [f"<{self.__class__.__name__}("]
        for key, value in self.options.items():
            if full or value != self._options[key]:
                out += [f"    '{key}': {repr(value)},"]
        out += [")>"]
        if len(out) - 2:
            return "\n".join(out)
        else:
            return "".join(out)

    def __enter__(self):
        self._backup = getattr(settings, self._settings_name)
        self._set_as_global_default()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_traceback: types.TracebackType | None,
    ) -> None:
        self._backup._set_as_global_default()

    def _set_as_global_default(self):
        setattr(settings, self._settings_name, self)
