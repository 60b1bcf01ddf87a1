"""Lightweight i18n module for satela.

Locale files in satela/locales/<code>.yaml hold every user-facing
string and the command keyword tables. Keys use dot notation:

    t("commands.search.response", query="рецепт борща")
    t_list("wake_word.aliases")
"""

import os
from typing import Any, Dict, List

import yaml

from satela import PACKAGE_DIR
from satela.utils import satela_log

LOCALES_DIR = os.path.join(PACKAGE_DIR, "locales")

_cache: Dict[str, dict] = {}
_active: List[str] = []   # lookup order: locale, then fallback
_locale: str = "ru"
_fallback: str = "en"


def _load(lang: str) -> dict:
    if lang not in _cache:
        path = os.path.join(LOCALES_DIR, f"{lang}.yaml")
        if not os.path.exists(path):
            satela_log("I18N", f"No locale file for '{lang}'", level="WARNING")
            return {}
        with open(path, "r", encoding="utf-8") as f:
            _cache[lang] = yaml.safe_load(f) or {}
    return _cache[lang]


def setup(locale: str = "ru", fallback: str = "en") -> None:
    """Select the active locale and the one consulted when a key is missing."""
    global _locale, _fallback
    _locale = locale
    _fallback = fallback
    _active[:] = [lang for lang in dict.fromkeys([locale, fallback]) if _load(lang)]


def _lookup(key: str) -> Any:
    for lang in _active:
        node: Any = _cache.get(lang, {})
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                node = None
                break
            node = node[part]
        if node is not None:
            return node
    return None


def t(key: str, **kwargs) -> Any:
    """Translated value for key; the key itself when no locale has it.

    Strings are formatted with kwargs. Lists and dicts come back as-is.
    """
    value = _lookup(key)
    if value is None:
        return key
    if isinstance(value, str) and kwargs:
        try:
            return value.format(**kwargs)
        except (KeyError, IndexError) as e:
            satela_log("I18N", f"Bad placeholder in '{key}': {e}", level="WARNING")
    return value


def t_list(key: str) -> List[str]:
    """List value for key, lower-cased; [] when missing or not a list."""
    value = t(key)
    if not isinstance(value, list):
        return []
    return [str(item).lower() for item in value]


def available_locales() -> List[str]:
    if not os.path.isdir(LOCALES_DIR):
        return []
    return sorted(name[:-5] for name in os.listdir(LOCALES_DIR) if name.endswith(".yaml"))


def get_locale() -> str:
    return _locale


def get_fallback() -> str:
    return _fallback
