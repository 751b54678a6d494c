"""
Message translation for winmaint.

Messages are looked up in the ``winmaint`` gettext domain under the
``locales`` directory next to this module. Missing catalogs fall back to
the untranslated English text.
"""

import gettext
import os
from typing import Dict, Optional

DEFAULT_LANGUAGE = "en"
DOMAIN = "winmaint"

CURRENT_LANGUAGE = DEFAULT_LANGUAGE

TRANSLATIONS: Dict[str, gettext.NullTranslations] = {}


def set_language(language: Optional[str]) -> None:
    """Select the language used by subsequent ``_()`` calls."""
    global CURRENT_LANGUAGE  # pylint: disable=global-statement
    CURRENT_LANGUAGE = language or DEFAULT_LANGUAGE


def get_language() -> str:
    """Return the currently selected language."""
    return CURRENT_LANGUAGE


def get_translation(language: Optional[str] = None) -> gettext.NullTranslations:
    """Return the (cached) translation catalog for a language."""
    if language is None:
        language = CURRENT_LANGUAGE

    if language not in TRANSLATIONS:
        localedir = os.path.join(os.path.dirname(__file__), "locales")
        TRANSLATIONS[language] = gettext.translation(
            DOMAIN, localedir, [language], fallback=True
        )

    return TRANSLATIONS[language]


def _(message: str, language: Optional[str] = None) -> str:
    """Translate a message."""
    return get_translation(language).gettext(message)
