"""Gemini API key selection.

The assistant only needs two capabilities from its credential source: asking
whether a key is currently selected, and letting the user select one. The
default source reads the key from the environment and, when asked to select
one, prompts for it on the terminal without echoing it.
"""

import os
from typing import Optional, Protocol

from rich.prompt import Prompt

API_KEY_VARIABLES = ("GEMINI_API_KEY", "API_KEY")


class CredentialProvider(Protocol):
    def has_selected_key(self) -> bool: ...

    def open_key_selection(self) -> None: ...

    def api_key(self) -> Optional[str]: ...


class EnvironmentCredentials:
    """API key taken from ``GEMINI_API_KEY`` (or ``API_KEY``), or typed in.

    A key entered through ``open_key_selection`` lives only in this object for
    the rest of the session.
    """

    def __init__(self, key: Optional[str] = None):
        self._key = key

    def api_key(self) -> Optional[str]:
        if self._key:
            return self._key
        for variable in API_KEY_VARIABLES:
            value = os.getenv(variable)
            if value:
                return value
        return None

    def has_selected_key(self) -> bool:
        return bool(self.api_key())

    def open_key_selection(self) -> None:
        key = Prompt.ask("[bold yellow]Enter your Gemini API key[/bold yellow]", password=True)
        self._key = key.strip() or None
