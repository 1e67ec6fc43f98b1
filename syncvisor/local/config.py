import logging
from collections import ChainMap
from typing import Any, Dict

import syncvisor.settings as default_settings

log = logging.getLogger(__name__)


class EffectiveSettings:
    """
    Attribute access to the upper-case values in `settings.py`, with an
    in-memory override layer on top.

    `settings.py` has already applied the `.env` file and the environment.
    Overrides last for the lifetime of the process and are never written back.
    """

    def __init__(self) -> None:
        defaults = {key: getattr(default_settings, key) for key in dir(default_settings) if key.isupper()}
        self._overrides: Dict[str, Any] = {}
        self._values = ChainMap(self._overrides, defaults)

    def __getattr__(self, name: str) -> Any:
        values = self.__dict__.get("_values")
        if values is not None and name in values:
            return values[name]
        raise AttributeError(f"Unknown setting '{name}'")

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def override(self, key: str, value: Any) -> None:
        """
        Replaces a setting for the rest of the process.

        :raises KeyError: If `key` is not a known setting.
        """
        if key not in self._values:
            raise KeyError(f"Unknown setting '{key}'.")
        log.debug(f"Setting {key} overridden for this process.")
        self._overrides[key] = value

    def get_all_settings(self) -> Dict[str, Any]:
        """Returns a snapshot of every setting with overrides applied."""
        return dict(self._values)


effective_settings = EffectiveSettings()
