"""
Phone Heuristics - Ordered Strategy Chain for Detail Pages

Finds a single phone number on a rendered detail page. Strategies are tried
in a fixed priority order and the first one that yields a number wins:

1. StructuredAttributeStrategy - data-item-id="phone:tel:<n>" or a tel: link
2. LabeledControlStrategy      - phone button tooltip/aria-label
3. TaggedElementStrategy       - any element tagged "phone", pattern match
4. FreeTextStrategy            - line-by-line scan of visible text

Everything locale-specific (address vocabulary, postal code shape, phone
numbering plan, button boilerplate) lives in a PhoneLocale so the chain can be
pointed at another market without touching the strategies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from ..errors import ConfigError
from .document import DetailDocument


MIN_PHONE_DIGITS = 8
MAX_PHONE_DIGITS = 15
MAX_FREE_TEXT_LINE = 60

# Unformatted number: a whole run of digits, nothing cut from a longer run
DIGIT_RUN = re.compile(r"(?<!\d)\d{%d,%d}(?!\d)" % (MIN_PHONE_DIGITS, MAX_PHONE_DIGITS))


@dataclass(frozen=True)
class PhoneLocale:
    code: str
    # Matched against the whole phone-shaped candidate
    phone_pattern: re.Pattern
    postal_code_pattern: re.Pattern
    address_keywords: re.Pattern
    # Words removed from a phone button's aria-label
    label_boilerplate: re.Pattern
    # data-tooltip fragments that mark a phone button
    tooltip_keywords: tuple[str, ...]


PT_BR = PhoneLocale(
    code="pt-BR",
    phone_pattern=re.compile(
        r"(?<!\d)(?:\+?55\s?)?(?:\(?0?[1-9]{2}\)?\s?)?(?:9\d{4}|\d{4})[-.\s]?\d{4}(?!\d)"
    ),
    postal_code_pattern=re.compile(r"(?<!\d)\d{5}-\d{3}(?!\d)"),
    address_keywords=re.compile(
        r"(Rua|Av\.|Avenida|Praça|Rodovia|Bairro|CEP|Estado|Cidade|Logradouro)", re.IGNORECASE
    ),
    label_boilerplate=re.compile(
        r"\b(copiar|copy|n[úu]mero|number|de|do|telefone|phone)\b", re.IGNORECASE
    ),
    tooltip_keywords=("telefone", "phone"),
)

LOCALES: Dict[str, PhoneLocale] = {PT_BR.code: PT_BR}


def register_locale(locale: PhoneLocale) -> None:
    LOCALES[locale.code] = locale


def get_locale(code: str) -> PhoneLocale:
    try:
        return LOCALES[code]
    except KeyError:
        raise ConfigError(f"unknown phone locale {code!r} (known: {', '.join(sorted(LOCALES))})") from None


def count_digits(s: str) -> int:
    return sum(1 for ch in s if ch.isdigit())


def digits_in_bounds(s: str) -> bool:
    return MIN_PHONE_DIGITS <= count_digits(s) <= MAX_PHONE_DIGITS


def match_phone(text: str, locale: PhoneLocale) -> Optional[str]:
    """First phone-shaped substring of ``text`` within the digit bounds.

    Falls back to a bare run of 8..15 digits when nothing fits the locale's
    numbering plan (international or unformatted numbers).
    """
    for m in locale.phone_pattern.finditer(text or ""):
        candidate = m.group(0).strip()
        if digits_in_bounds(candidate):
            return candidate
    m = DIGIT_RUN.search(text or "")
    return m.group(0) if m else None


@dataclass(frozen=True)
class PhoneMatch:
    phone: str
    strategy: str


class PhoneStrategy:
    """One heuristic. Subclasses return the number or None."""
    name = "base"

    def find(self, doc: DetailDocument, locale: PhoneLocale) -> Optional[str]:
        raise NotImplementedError


class StructuredAttributeStrategy(PhoneStrategy):
    """Semantic markup: highest confidence, value returned verbatim."""
    name = "structured_attribute"
    TOKEN = "phone:tel:"

    def find(self, doc: DetailDocument, locale: PhoneLocale) -> Optional[str]:
        for node in doc.css(f'[data-item-id*="{self.TOKEN}"]'):
            raw = node.attributes.get("data-item-id") or ""
            value = raw.split(self.TOKEN)[-1].strip()
            if value:
                return value
        for node in doc.css('a[href^="tel:"]'):
            href = (node.attributes.get("href") or "").strip()
            value = href[4:].strip()
            if value:
                return value
        return None


class LabeledControlStrategy(PhoneStrategy):
    name = "labeled_control"
    _EDGE_PUNCT = " \t\r\n:;,.-–—|/"

    def clean_label(self, label: str, locale: PhoneLocale) -> str:
        if ":" in label:
            label = label.split(":")[-1]
        label = locale.label_boilerplate.sub(" ", label)
        label = re.sub(r"\s+", " ", label)
        return label.strip(self._EDGE_PUNCT)

    def find(self, doc: DetailDocument, locale: PhoneLocale) -> Optional[str]:
        selector = ", ".join(f'button[data-tooltip*="{kw}"]' for kw in locale.tooltip_keywords)
        for node in doc.css(selector):
            label = self.clean_label(node.attributes.get("aria-label") or "", locale)
            if count_digits(label) >= MIN_PHONE_DIGITS:
                return label
        return None


class TaggedElementStrategy(PhoneStrategy):
    name = "tagged_element"

    def find(self, doc: DetailDocument, locale: PhoneLocale) -> Optional[str]:
        for node in doc.css('[data-item-id*="phone"]'):
            text = (node.attributes.get("aria-label") or node.text(separator=" ") or "").strip()
            found = match_phone(text, locale)
            if found:
                return found
        return None


class FreeTextStrategy(PhoneStrategy):
    """Last resort over visible text. Address-looking lines are skipped
    because street numbers easily look like phones. Postal codes are cut
    out of the line before matching."""
    name = "free_text"

    def find(self, doc: DetailDocument, locale: PhoneLocale) -> Optional[str]:
        for line in doc.lines():
            if not line or len(line) > MAX_FREE_TEXT_LINE:
                continue
            if locale.address_keywords.search(line):
                continue
            cleaned = locale.postal_code_pattern.sub("", line)
            found = match_phone(cleaned, locale)
            if found:
                return found
        return None


DEFAULT_STRATEGIES: tuple[PhoneStrategy, ...] = (
    StructuredAttributeStrategy(),
    LabeledControlStrategy(),
    TaggedElementStrategy(),
    FreeTextStrategy(),
)


class HeuristicChain:
    """Runs strategies in order; later strategies never override earlier ones."""

    def __init__(self, strategies: Optional[Sequence[PhoneStrategy]] = None, locale: PhoneLocale | str = PT_BR) -> None:
        self.strategies: List[PhoneStrategy] = list(DEFAULT_STRATEGIES if strategies is None else strategies)
        self.locale = get_locale(locale) if isinstance(locale, str) else locale

    def find(self, doc: DetailDocument) -> Optional[PhoneMatch]:
        for strategy in self.strategies:
            phone = strategy.find(doc, self.locale)
            if phone:
                return PhoneMatch(phone=phone, strategy=strategy.name)
        return None

    def extract(self, doc: DetailDocument) -> str:
        """Phone string, or "" when no strategy matched."""
        match = self.find(doc)
        return match.phone if match else ""

    def names(self) -> Iterable[str]:
        return [s.name for s in self.strategies]


def extract_phone(doc: DetailDocument, locale: PhoneLocale | str = PT_BR) -> str:
    return HeuristicChain(locale=locale).extract(doc)
