#!/usr/bin/env python3
"""
Command Interpreter - rule-based classification of utterances

Каждая фраза проверяется по упорядоченной таблице правил:
- поиск подстроки без учёта регистра
- побеждает первое совпавшее правило (приоритет, а не длина совпадения)
- если ничего не совпало, срабатывает fallback

Ключевые слова и тексты ответов берутся из текущей локали (satela/locales).
Классификация чистая: отложенные действия (деактивация) выполняет вызывающий.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from satela.history import Category
from satela.i18n import t, t_list
from satela.utils import satela_log

FALLBACK_RULE = "fallback"
DEACTIVATE_RULE = "deactivate"


@dataclass(frozen=True)
class Interpretation:
    """Result of matching one utterance against the rule table."""
    response: str
    category: Category
    rule: str

    @property
    def deactivate(self) -> bool:
        """True when the caller must schedule deactivation."""
        return self.rule == DEACTIVATE_RULE

    def as_tuple(self) -> Tuple[str, Category]:
        return self.response, self.category


class CommandInterpreter:
    """
    Ordered keyword rules → (response, category).

    Порядок RULES и есть приоритет: "открой музыку" означает запуск
    приложения, а не медиа.
    """

    # (rule name, category) in priority order; keywords live in the locale
    RULES: List[Tuple[str, Category]] = [
        ("launch", Category.APP),
        ("search", Category.SEARCH),
        ("media_play", Category.MEDIA),
        ("media_pause", Category.MEDIA),
        ("weather", Category.INFO),
        ("time", Category.INFO),
        ("date", Category.INFO),
        ("reminder", Category.NOTE),
        ("gratitude", Category.SYSTEM),
        (DEACTIVATE_RULE, Category.SYSTEM),
    ]

    LAUNCH_TARGETS = ("browser", "calculator", "notepad")

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.now
        self._keywords: Dict[str, List[str]] = {}
        for rule, _category in self.RULES:
            keywords = t_list(f"commands.{rule}.keywords")
            if not keywords:
                satela_log("INTERPRETER", f"No keywords for rule '{rule}' in locale", level="WARNING")
            self._keywords[rule] = keywords

        self._targets: List[Tuple[str, List[str]]] = [
            (target, t_list(f"commands.launch.targets.{target}.keywords"))
            for target in self.LAUNCH_TARGETS
        ]

        strip_words = self._keywords["search"] + t_list("commands.search.strip_phrases")
        # Longest first so a phrase is removed whole before any of its parts
        strip_words.sort(key=len, reverse=True)
        if strip_words:
            self._search_strip = re.compile("|".join(re.escape(w) for w in strip_words))
        else:
            self._search_strip = None

        self._handlers: Dict[str, Callable[[str], str]] = {
            "launch": self._respond_launch,
            "search": self._respond_search,
            "time": self._respond_time,
            "date": self._respond_date,
        }

    @staticmethod
    def _contains_any(text: str, keywords: List[str]) -> bool:
        return any(keyword in text for keyword in keywords)

    def match(self, utterance: str) -> Interpretation:
        """Classify an utterance. Total: never raises for any string."""
        command_lower = (utterance or "").lower()

        for rule, category in self.RULES:
            if not self._contains_any(command_lower, self._keywords[rule]):
                continue
            handler = self._handlers.get(rule)
            if handler is not None:
                response = handler(command_lower)
            else:
                response = t(f"commands.{rule}.response")
            return Interpretation(response, category, rule)

        return Interpretation(t("commands.fallback.response"), Category.SYSTEM, FALLBACK_RULE)

    def interpret(self, utterance: str) -> Tuple[str, Category]:
        """Return (response, category) for an utterance."""
        return self.match(utterance).as_tuple()

    # ------------------------------------------------------------------
    # Responses that depend on the utterance or the clock
    # ------------------------------------------------------------------

    def _respond_launch(self, command_lower: str) -> str:
        for target, keywords in self._targets:
            if self._contains_any(command_lower, keywords):
                return t(f"commands.launch.targets.{target}.response")
        return t("commands.launch.not_found")

    def extract_search_query(self, command_lower: str) -> str:
        """Strip trigger words and the "on the internet" phrase, then trim."""
        query = command_lower
        if self._search_strip is not None:
            query = self._search_strip.sub("", query)
        return query.strip()

    def _respond_search(self, command_lower: str) -> str:
        return t("commands.search.response", query=self.extract_search_query(command_lower))

    def _respond_time(self, command_lower: str) -> str:
        now = self._clock()
        clock_text = t("formats.time", hour=now.hour, minute=f"{now.minute:02d}")
        return t("commands.time.response", time=clock_text)

    def _respond_date(self, command_lower: str) -> str:
        now = self._clock()
        return t("commands.date.response", date=now.strftime(t("formats.date")))
