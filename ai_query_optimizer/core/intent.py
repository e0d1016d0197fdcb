"""
Query intent classification.

Keyword tables for business categories, operations, time scope and
answer characteristics, consumed by one generic matcher. Patterns cover
Polish (the users' language) and English phrasings; tune the tables,
not the matcher.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Pattern, Tuple, TypeVar

from .token_counter import OutputComplexity

K = TypeVar("K")


class QueryCategory(Enum):
    """Business areas a query can be about."""
    RECIPES = "recipes"
    INVENTORY = "inventory"
    ORDERS = "orders"
    PRODUCTION = "production"
    SUPPLIERS = "suppliers"
    ANALYTICS = "analytics"
    QUALITY = "quality"
    COSTS = "costs"
    INVOICES = "invoices"
    TRANSPORT = "transport"
    STOCKTAKING = "stocktaking"
    PRICE_HISTORY = "price_history"
    VALUE_CHAIN = "value_chain"
    TRACEABILITY = "traceability"


class QueryOperation(Enum):
    """What the query asks to do with the data."""
    COUNT = "count"
    LIST = "list"
    FILTER = "filter"
    COMPARE = "compare"
    AGGREGATE = "aggregate"
    SEARCH = "search"


class TimeScope(Enum):
    """Time window signalled by the query."""
    RECENT = "recent"
    PERIOD_BOUND = "period_bound"
    HISTORICAL = "historical"


class Characteristic(Enum):
    """Answer-shaping traits used by model selection."""
    SIMPLE_COUNT = "simple_count"
    ANALYTICAL = "analytical"
    COMPLEX = "complex"
    CREATIVE = "creative"
    DETAILED = "detailed"


def _patterns(*sources: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


CATEGORY_PATTERNS: Dict[QueryCategory, Tuple[Pattern, ...]] = {
    QueryCategory.RECIPES: _patterns(
        r"receptur|recept[ya]|składnik|komponent|produkcj",
        r"\brecipes?\b|\bingredients?\b|\bcomponents?\b",
    ),
    QueryCategory.INVENTORY: _patterns(
        r"magazyn|\bstan|zapas|produkt|dostępn",
        r"\binventor|\bstock\b|\bstocks\b|warehouse",
    ),
    QueryCategory.ORDERS: _patterns(
        r"zamówie|klient|sprzedaż|dostaw",
        r"\borders?\b|\bcustomers?\b|\bsales\b",
    ),
    QueryCategory.PRODUCTION: _patterns(
        r"produkc|zadani|\bmo\b|zleceni|harmonogram",
        r"\bproduction\b|\bmanufactur|\bschedul",
    ),
    QueryCategory.SUPPLIERS: _patterns(
        r"dostawc|supplier|vendor",
    ),
    QueryCategory.ANALYTICS: _patterns(
        r"analiz|trend|statystyk|porówn|wykres",
        r"\banaly|\bstatistic|\bchart",
    ),
    QueryCategory.QUALITY: _patterns(
        r"kompletnoś|\bbrak|\bluk[aiy]\b|niekompletn|\bbez\b|nie ma",
        r"\bmissing\b|\bincomplete|\bquality\b|\bgaps?\b",
    ),
    QueryCategory.COSTS: _patterns(
        r"koszt|\bcen[aąyie]\b|opłacalnoś|rentownoś|finansow",
        r"\bcosts?\b|\bprices?\b|\bprofitab|\bfinanc",
    ),
    QueryCategory.INVOICES: _patterns(
        r"faktur|płatnoś|należnoś|zaległoś",
        r"\binvoices?\b|\bpayments?\b|\boverdue\b",
    ),
    QueryCategory.TRANSPORT: _patterns(
        r"\bcmr\b|transport|wysyłk|przewóz|logistyk|dostarcz",
        r"\bshipp|\bfreight\b|\blogistic",
    ),
    QueryCategory.STOCKTAKING: _patterns(
        r"inwentaryzac|rozbieżnoś|\bstraty|nadwyżk|\bspis",
        r"stocktak|\bdiscrepanc|\bshrinkage\b",
    ),
    QueryCategory.PRICE_HISTORY: _patterns(
        r"historia cen|zmian[ay] cen|trend cenow",
        r"price history|price changes?",
    ),
    QueryCategory.VALUE_CHAIN: _patterns(
        r"łańcuch|ścieżk[aęi]|prześledz|\bmarż[aąy]",
        r"value chain|\bmargins?\b",
    ),
    QueryCategory.TRACEABILITY: _patterns(
        r"pochodzeni|\bskąd\b|źródł",
        r"\btraceab|\borigin\b|\bprovenance\b",
    ),
}

OPERATION_PATTERNS: Dict[QueryOperation, Tuple[Pattern, ...]] = {
    QueryOperation.COUNT: _patterns(
        r"\bile\b|\bliczb[aęy]\b|\bilość",
        r"\bhow many\b|\bcount\b|\bnumber of\b",
    ),
    QueryOperation.LIST: _patterns(
        r"\blist[aęy]\b|\bpokaż|\bpokaz|wyświetl|wszystk",
        r"\blist\b|\bshow\b|\bdisplay\b|\ball\b",
    ),
    QueryOperation.FILTER: _patterns(
        r"\bgdzie\b|\bktóre\b|\bktóry|spełniaj|większ|mniejsz|\bponad\b|poniżej|\bnisk",
        r"\bwhere\b|\bwhich\b|\babove\b|\bbelow\b|\bgreater than\b|\bless than\b|\blow\b",
    ),
    QueryOperation.COMPARE: _patterns(
        r"porówn|\bvs\b|versus|różnic|najleps|najgors",
        r"\bcompar|\bdifferen|\bbest\b|\bworst\b",
    ),
    QueryOperation.AGGREGATE: _patterns(
        r"\bsum[aęy]\b|średni|łączn|\brazem\b|ogółem",
        r"\bsum\b|\btotal\b|\baverage\b|\bmean\b",
    ),
    QueryOperation.SEARCH: _patterns(
        r"znajdź|wyszukaj|poszukaj",
        r"\bfind\b|\bsearch\b|\blook up\b",
    ),
}

TIME_SCOPE_PATTERNS: Dict[TimeScope, Tuple[Pattern, ...]] = {
    TimeScope.RECENT: _patterns(
        r"ostatni|najnowsz|aktualn",
        r"\brecent|\blatest\b|\blast\b",
    ),
    TimeScope.PERIOD_BOUND: _patterns(
        r"miesiąc|miesięc|tydzień|tygodni|\brok\b|\broku\b|\bdzień|\bdni\b|okres",
        r"\bmonths?\b|\bweeks?\b|\byears?\b|\bdays?\b|\bperiod\b",
    ),
    TimeScope.HISTORICAL: _patterns(
        r"histori|przeszł|wcześniej|poprzedni",
        r"\bhistor|\bpast\b|\bprevious\b|\bearlier\b",
    ),
}

CHARACTERISTIC_PATTERNS: Dict[Characteristic, Tuple[Pattern, ...]] = {
    Characteristic.SIMPLE_COUNT: _patterns(
        r"^\s*(ile|liczba|ilość)\s+(jest|są|wynosi|znajduje się)",
        r"^\s*(how many|count of|number of)\b.*\b(is|are|exist|exists)\b",
    ),
    Characteristic.ANALYTICAL: _patterns(
        r"analiz|trend|prognoz|porówn|optymalizuj|rekomend",
        r"\banaly|\btrend|\bforecast|\bcompar|\boptimi[sz]|\brecommend",
    ),
    Characteristic.COMPLEX: _patterns(
        r"dlaczego|jak można|w jaki sposób|przyczyn|mechanizm",
        r"\bwhy\b|\bhow can\b|\bin what way\b|\bcauses?\b|\bmechanism",
    ),
    Characteristic.CREATIVE: _patterns(
        r"stwórz|napisz|przygotuj|zaprojektuj",
        r"\bcreate\b|\bwrite\b|\bdesign\b|\bdraft\b",
    ),
    Characteristic.DETAILED: _patterns(
        r"szczegół",
        r"\bdetail",
    ),
}

_DEEP_ANALYSIS = _patterns(r"analiz", r"\banaly")


def match_flags(table: Mapping[K, Iterable[Pattern]], text: str) -> FrozenSet[K]:
    """Return every key of ``table`` with at least one pattern found in ``text``."""
    if not text:
        return frozenset()
    return frozenset(
        key for key, patterns in table.items()
        if any(pattern.search(text) for pattern in patterns)
    )


def _ordered(flags: FrozenSet[K], table: Mapping[K, Iterable[Pattern]]) -> Tuple[K, ...]:
    return tuple(key for key in table if key in flags)


@dataclass(frozen=True)
class QueryAnalysis:
    """Per-query intent used to build a relevance map. Never persisted."""
    categories: Tuple[QueryCategory, ...]
    operations: Tuple[QueryOperation, ...]
    time_scopes: FrozenSet[TimeScope]
    confidence: float
    is_single_category: bool
    is_complex: bool

    def has_category(self, category: QueryCategory) -> bool:
        return category in self.categories

    def has_operation(self, operation: QueryOperation) -> bool:
        return operation in self.operations

    @property
    def is_pure_count(self) -> bool:
        """Count is the only operation asked for."""
        return self.operations == (QueryOperation.COUNT,)

    @property
    def wants_recent(self) -> bool:
        return TimeScope.RECENT in self.time_scopes

    @property
    def primary_category(self) -> str:
        return self.categories[0].value if self.categories else "general"


def analyze_query_intent(query: str) -> QueryAnalysis:
    """Classify a query into categories, operations and time scope.

    Confidence grows with every category (0.4) and operation (0.3) that
    fired, from a 0.3 floor, capped at 1.0.
    """
    text = (query or "").lower()
    categories = _ordered(match_flags(CATEGORY_PATTERNS, text), CATEGORY_PATTERNS)
    operations = _ordered(match_flags(OPERATION_PATTERNS, text), OPERATION_PATTERNS)
    time_scopes = match_flags(TIME_SCOPE_PATTERNS, text)

    confidence = min(1.0, len(categories) * 0.4 + len(operations) * 0.3 + 0.3)
    deep_analysis = any(pattern.search(text) for pattern in _DEEP_ANALYSIS)

    return QueryAnalysis(
        categories=categories,
        operations=operations,
        time_scopes=time_scopes,
        confidence=round(confidence, 4),
        is_single_category=len(categories) == 1 and len(operations) >= 1,
        is_complex=len(categories) > 2 or deep_analysis,
    )


@dataclass(frozen=True)
class QueryCharacteristics:
    """Answer-shaping traits of a query."""
    is_simple_count: bool
    is_analytical: bool
    is_complex: bool
    requires_creativity: bool
    output_complexity: OutputComplexity
    contains_numbers: bool
    is_question: bool


def analyze_query_characteristics(query: str) -> QueryCharacteristics:
    """Detect the traits that drive tier choice and sampling parameters."""
    text = (query or "").strip()
    flags = match_flags(CHARACTERISTIC_PATTERNS, text.lower())

    is_analytical = Characteristic.ANALYTICAL in flags
    is_complex = Characteristic.COMPLEX in flags
    requires_creativity = Characteristic.CREATIVE in flags

    if is_analytical or is_complex:
        output_complexity = OutputComplexity.LONG
    elif requires_creativity or Characteristic.DETAILED in flags:
        output_complexity = OutputComplexity.MEDIUM
    else:
        output_complexity = OutputComplexity.SHORT

    return QueryCharacteristics(
        is_simple_count=Characteristic.SIMPLE_COUNT in flags,
        is_analytical=is_analytical,
        is_complex=is_complex,
        requires_creativity=requires_creativity,
        output_complexity=output_complexity,
        contains_numbers=bool(re.search(r"\d", text)),
        is_question="?" in text,
    )
