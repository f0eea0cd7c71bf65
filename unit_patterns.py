"""
Pump Advisor: Unit & Pattern Library

Responsibilities:
  1. Ordered keyword tables for application, building size, water source,
     problem, competitor brand and benchmark domain
  2. Number + unit extraction with conversion to m³/h, m and kW
  3. Conversational cues: corrections, greetings, "my house", new signals

Every function here is pure and total: unexpected text yields None,
never an exception.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models import Application, BuildingSize, Problem, WaterSource

# ============================================================
# Unit Conversion
# ============================================================

GPM_TO_M3H = 0.2271
LPM_TO_M3H = 0.06
LPS_TO_M3H = 3.6
FT_TO_M = 0.3048
HP_TO_KW = 0.7457


def convert(value: float, factor: float) -> float:
    """Apply a unit factor; all converted outputs carry 3 decimals."""
    return round(value * factor, 3)


# ============================================================
# Pattern Tables
# ============================================================

class MatchStrategy(str, Enum):
    FIRST_MATCH = "first_match"      # first rule (in table order) that hits
    HIGHEST_SCORE = "highest_score"  # count every hit per tag, max wins


@dataclass(frozen=True)
class PatternTable:
    name: str
    strategy: MatchStrategy
    rules: tuple[tuple[re.Pattern, str], ...]

    def detect(self, text: str) -> Optional[str]:
        if not text:
            return None
        if self.strategy is MatchStrategy.FIRST_MATCH:
            for pat, tag in self.rules:
                if pat.search(text):
                    return tag
            return None

        scores: dict[str, int] = {}
        for pat, tag in self.rules:
            hits = len(pat.findall(text))
            if hits:
                scores[tag] = scores.get(tag, 0) + hits
        if not scores:
            return None
        best = max(scores, key=scores.get)
        # A tie between categories is ambiguous
        if list(scores.values()).count(scores[best]) > 1:
            return None
        return best

    def matches_any(self, text: str) -> bool:
        return any(pat.search(text) for pat, _ in self.rules)


def _table(name: str, strategy: MatchStrategy,
           rules: list[tuple[str, str]]) -> PatternTable:
    return PatternTable(
        name=name,
        strategy=strategy,
        rules=tuple((re.compile(p, re.IGNORECASE), tag) for p, tag in rules),
    )


APPLICATION_TABLE = _table('application', MatchStrategy.HIGHEST_SCORE, [
    # Heating
    (r'\b(heat(?:ing)?|radiator|boiler|warm(?:th|ing)?|hvac|underfloor|radiant|furnace)\b',
     'heating'),
    (r'\b(too\s+cold|freezing|winter|pipe\s*freeze|frost)\b', 'heating'),
    # Cooling
    (r'\b(cool(?:ing)?|chiller|air[\s-]?condition(?:ing|er)?|ac\b|refrigerat|ventilat)',
     'cooling'),
    (r'\b(too\s+hot|overheat(?:ing)?|summer|swelter|humid)\b', 'cooling'),
    # Water supply: buildings, commercial, agriculture
    (r'\b(water[\s-]?supply|pressure[\s-]?boost(?:ing)?|municipal|irrigat|borehole|'
     r'well[\s-]?pump|boosting|building[\s-]?water|fire[\s-]?(?:protect|fight|suppress))\b',
     'water_supply'),
    (r'\b(low[\s-]?(?:water\s+)?pressure|no[\s-]?water|weak[\s-]?flow|water[\s-]?tower)\b',
     'water_supply'),
    # Domestic water
    (r'\b(domestic|household|home\b|house\b|residential|tap[\s-]?water|hot[\s-]?water|'
     r'shower|faucet|bathroom|kitchen|condo\b|flat\b|bahay|'
     r'my[\s-]?(?:house|home|place|apartment|condo|flat))\b',
     'domestic_water'),
    (r'\b(washing[\s-]?machine|dishwasher|garden[\s-]?(?:hose|water)|pool\b|'
     r'rain[\s-]?water|cistern)\b',
     'domestic_water'),
    # Wastewater
    (r'\b(wastewater|sewage|sewer|drainage|septic|effluent|sewerage|'
     r'basement\s+\w*\s*flood(?:ing)?|flood(?:ing|ed)?\s+(?:my\s+)?basement|sump)\b',
     'wastewater'),
    # Dosing
    (r'\b(dos(?:ing|e)|chlorinat(?:ion|e)|ph[\s-]?(?:adjust|control)|'
     r'water[\s-]?treatment[\s-]?(?:dos|chemical)|flocculat|disinfect(?:ion|ant)?)\b',
     'dosing'),
])

# Large first so "20-floor office" is large before "office" reads medium
BUILDING_SIZE_TABLE = _table('building_size', MatchStrategy.FIRST_MATCH, [
    (r'\b(large|big|high[\s-]?rise|tower|skyscraper|hospital|mall|campus|'
     r'9[\s-]?floor|10[\s-]?floor|\d{2,}[\s-]?floor)\b', 'large'),
    (r'\b(?:(?:[5-9]\d|\d{3,})[\s-]?(?:room|unit)s?)\b', 'large'),
    (r'\b(small|1[\s-]?(?:to|-)[\s-]?3|one[\s-]?to[\s-]?three|few|tiny|single[\s-]?famil|'
     r'house\b|villa|bungalow|cottage|1[\s-]?floor|2[\s-]?floor|3[\s-]?floor|duplex|studio)\b',
     'small'),
    (r'\b(1[\s-]?(?:bed)?room|2[\s-]?(?:bed)?room|3[\s-]?(?:bed)?room)\b', 'small'),
    (r'\b(small[\s-]?(?:business|shop|office|farm))\b', 'small'),
    (r'\b(medium|4[\s-]?(?:to|-)[\s-]?8|four[\s-]?to[\s-]?eight|mid[\s-]?(?:size|rise)?|'
     r'apartment|commercial|condominium|4[\s-]?floor|5[\s-]?floor|6[\s-]?floor|'
     r'7[\s-]?floor|8[\s-]?floor)\b', 'medium'),
    (r'\b(school|clinic|restaurant|warehouse|gym|church|shop(?:ping)?|hotel|factory|'
     r'office|resort)\b', 'medium'),
    (r'\b(?:(?:1\d|2\d|3\d|4\d|50)[\s-]?(?:room|unit)s?)\b', 'medium'),
])

# "as well", "works well", "not very well" are not water sources
_NOT_A_WELL = (r'(?<!as\s)(?<!very\s)(?<!work\s)(?<!works\s)(?<!working\s)'
               r'(?<!run\s)(?<!runs\s)(?<!running\s)')

WATER_SOURCE_TABLE = _table('water_source', MatchStrategy.FIRST_MATCH, [
    (r'\b((?:deep\s*)?' + _NOT_A_WELL + r'well(?![\s-]+(?:as|known|done|made|maintained))|'
     r'borehole|ground\s*water|poso)\b', 'well'),
    (r'\b(tank|cistern|reservoir|rain\s*water)\b', 'tank'),
    (r'\b(mains|municipal|city\s*water|piped|metro\s*water|water\s*district|'
     r'water\s*utility)\b', 'mains'),
])

PROBLEM_TABLE = _table('problem', MatchStrategy.FIRST_MATCH, [
    (r'\b(low[\s-]?pressure|weak[\s-]?(?:water\s+)?(?:pressure|flow)|no[\s-]?pressure|'
     r'poor[\s-]?pressure|pressure\s+is\s+(?:weak|low|poor|bad)|'
     r'not[\s-]?enough[\s-]?(?:water|pressure)|pressure[\s-]?drop|barely|'
     r'mababa|kulang|halos\s*wala)\b', 'low_pressure'),
    (r"\b(no[\s-]?water|water[\s-]?(?:stopped|cut|out)|dry[\s-]?tap|"
     r"can'?t[\s-]?get[\s-]?water|patay\s*tubig|wala\s*tubig)\b", 'no_water'),
    (r'\b(replac(?:e|ing|ement)|swap(?:ping)?|upgrade|old[\s-]?pump|broken[\s-]?pump|'
     r'failing|failed|worn[\s-]?out|palitan|sira|gulong)\b', 'replacement'),
    (r'\b(new[\s-]?(?:install|pump|system)|install(?:ing|ation)?|set[\s-]?up|'
     r'brand[\s-]?new|building[\s-]?new|bagong)\b', 'new_install'),
    (r'\b(energy[\s-]?sav(?:ing|e)|reduc(?:e|ing)[\s-]?(?:cost|bill|energy)|'
     r'electricity[\s-]?bill|save[\s-]?money|too[\s-]?expensive[\s-]?to[\s-]?run|'
     r'mahal\s*kuryente)\b', 'energy_saving'),
])

COMPETITOR_BRAND_TABLE = _table('competitor_brand', MatchStrategy.FIRST_MATCH, [
    (r'\bwilo\b', 'Wilo'),
    (r'\bksb\b', 'KSB'),
    (r'\blowara\b', 'Lowara'),
    (r'\bxylem\b', 'Xylem'),
    (r'\bdab\b', 'DAB'),
    (r'\bpedrollo\b', 'Pedrollo'),
    (r'\bebara\b', 'Ebara'),
    (r'\bflygt\b', 'Flygt'),
    (r'\bprominent\b', 'ProMinent'),
    (r'\biwaki\b', 'Iwaki'),
    (r'\bpentair\b', 'Pentair'),
])

# Benchmark domain tags; hot water before hvac so "HVAC hot water" is hot_water
EVAL_DOMAIN_TABLE = _table('eval_domain', MatchStrategy.FIRST_MATCH, [
    (r'hot[\s_-]?water|\bdhw\b|recirculat', 'hot_water'),
    (r'\bhvac\b|heating|chilled[\s-]?water|radiator|circulator', 'hvac'),
    (r'coolant|machine[\s-]?tool|cutting[\s-]?fluid|swarf', 'coolant'),
    (r'borehole|deep[\s-]?well|submersible|ground[\s-]?water', 'borehole'),
    (r'irrigat|sprinkler|agricultur|\bfarm', 'irrigation'),
    (r'booster|boosting|pressure[\s-]?boost|high[\s-]?rise', 'booster'),
    (r'process|industrial|boiler[\s-]?feed|washdown', 'process'),
    (r'motor[\s_-]?drive|motor[\s-]?power', 'motor_drive'),
    (r'domestic|household|residential|\bhome\b', 'domestic'),
])


def detect_application(text: str) -> Optional[Application]:
    tag = APPLICATION_TABLE.detect(text)
    return Application(tag) if tag else None


def detect_building_size(text: str) -> Optional[BuildingSize]:
    tag = BUILDING_SIZE_TABLE.detect(text)
    return BuildingSize(tag) if tag else None


def detect_water_source(text: str) -> Optional[WaterSource]:
    tag = WATER_SOURCE_TABLE.detect(text)
    return WaterSource(tag) if tag else None


def detect_problem(text: str) -> Optional[Problem]:
    tag = PROBLEM_TABLE.detect(text)
    return Problem(tag) if tag else None


def detect_competitor_brand(text: str) -> Optional[str]:
    return COMPETITOR_BRAND_TABLE.detect(text)


def detect_eval_domain(text: str) -> Optional[str]:
    """Benchmark domain tag used to bias family preferences, or None."""
    return EVAL_DOMAIN_TABLE.detect(text)


# ============================================================
# Competitor Model & Nameplate Power
# ============================================================

PUMP_MODEL_RE = re.compile(r'\b([A-Z][A-Za-z]*[\s-]?\d[\w\-./]*)')


def detect_pump_model(text: str) -> Optional[str]:
    """
    Model designation following the first competitor brand mention,
    e.g. "my old Wilo Stratos 25/1-8" -> "Stratos 25/1-8".
    """
    if not text:
        return None
    for pat, _ in COMPETITOR_BRAND_TABLE.rules:
        brand = pat.search(text)
        if brand:
            m = PUMP_MODEL_RE.search(text, brand.end())
            if m:
                model = m.group(1).rstrip('.-/')
                return model or None
            return None
    return None


POWER_KW_RE = re.compile(
    r'(?:power|rated|watt(?:s|age)?):?\s*(\d+(?:\.\d+)?)\s*kw\b', re.IGNORECASE)
POWER_W_RE = re.compile(
    r'(?:power|rated|watt(?:s|age)?):?\s*(\d+(?:\.\d+)?)\s*w\b', re.IGNORECASE)
POWER_HP_RE = re.compile(
    r'(?:power|rated):?\s*(\d+(?:\.\d+)?)\s*hp\b', re.IGNORECASE)


def extract_existing_power_kw(text: str) -> Optional[float]:
    """Rated power of the pump being replaced, in kW."""
    return _first_quantity(text, [
        (POWER_KW_RE, 1.0),
        (POWER_W_RE, 0.001),
        (POWER_HP_RE, HP_TO_KW),
    ])


# ============================================================
# Quantities
# ============================================================

FLOW_PATTERNS: list[tuple[re.Pattern, float]] = [
    (re.compile(r'(\d+(?:\.\d+)?)\s*(?:m[³3]\s*/\s*h(?:r|our)?\b|m3h\b|cmh\b|'
                r'cubic[\s-]?met(?:er|re)s?[\s-]?(?:per|/|an?)[\s-]?hour)',
                re.IGNORECASE), 1.0),
    (re.compile(r'(\d+(?:\.\d+)?)\s*(?:us\s*)?(?:gpm\b|gal(?:lon)?s?[\s-]?(?:per|/|a)[\s-]?min)',
                re.IGNORECASE), GPM_TO_M3H),
    (re.compile(r'(\d+(?:\.\d+)?)\s*(?:l\s*/\s*min\b|lpm\b|'
                r'lit(?:er|re)s?[\s-]?(?:per|/|a)[\s-]?min)',
                re.IGNORECASE), LPM_TO_M3H),
    (re.compile(r'(\d+(?:\.\d+)?)\s*(?:l\s*/\s*s(?:ec)?\b|lps\b|'
                r'lit(?:er|re)s?[\s-]?(?:per|/|a)[\s-]?sec)',
                re.IGNORECASE), LPS_TO_M3H),
]

HEAD_PATTERNS: list[tuple[re.Pattern, float]] = [
    (re.compile(r'(?:at\s+)?(\d+(?:\.\d+)?)\s*(?:met(?:er|re)s?|m)\s*(?:of[\s-]?)?'
                r'(?:head|tdh|lift)', re.IGNORECASE), 1.0),
    (re.compile(r'(\d+(?:\.\d+)?)\s*(?:ft|feet|foot)\b', re.IGNORECASE), FT_TO_M),
    (re.compile(r'(\d+(?:\.\d+)?)\s*(?:met(?:er|re)s?|m)\b(?!\s*[³3²/])', re.IGNORECASE), 1.0),
]

MOTOR_PATTERNS: list[tuple[re.Pattern, float]] = [
    (re.compile(r'(\d+(?:\.\d+)?)\s*kw\b', re.IGNORECASE), 1.0),
    (re.compile(r'(\d+(?:\.\d+)?)\s*(?:hp|horse[\s-]?power)\b', re.IGNORECASE), HP_TO_KW),
]

FLOORS_RE = re.compile(
    r'(\d+)[\s-]*(?:floors?|stor(?:e?ys?|ies)|levels?|palapag)\b', re.IGNORECASE)
BATHROOMS_RE = re.compile(
    r'(\d+)\s*(?:bath(?:room)?s?|toilets?|crs?\b|restrooms?|t&b|comfort\s*rooms?)',
    re.IGNORECASE)

# English and Tagalog counting words, normalised before count extraction
NUMBER_WORDS = {
    'one': 1, 'two': 2, 'three': 3, 'four': 4, 'five': 5, 'six': 6,
    'seven': 7, 'eight': 8, 'nine': 9, 'ten': 10, 'eleven': 11, 'twelve': 12,
    'isa': 1, 'dalawa': 2, 'tatlo': 3, 'apat': 4, 'lima': 5, 'anim': 6,
    'pito': 7, 'walo': 8, 'siyam': 9, 'sampu': 10,
}
_NUMBER_WORD_RE = re.compile(
    r'\b(' + '|'.join(NUMBER_WORDS) + r')\b', re.IGNORECASE)


def normalize_number_words(text: str) -> str:
    return _NUMBER_WORD_RE.sub(lambda m: str(NUMBER_WORDS[m.group(1).lower()]), text)


def _first_quantity(text: str,
                    table: list[tuple[re.Pattern, float]]) -> Optional[float]:
    if not text:
        return None
    for pat, factor in table:
        m = pat.search(text)
        if not m:
            continue
        try:
            value = float(m.group(1))
        except (ValueError, TypeError):
            continue
        if value > 0:
            return convert(value, factor)
    return None


def _first_count(text: str, pattern: re.Pattern) -> Optional[int]:
    if not text:
        return None
    for m in pattern.finditer(normalize_number_words(text)):
        try:
            value = int(m.group(1))
        except (ValueError, TypeError):
            continue
        if value > 0:
            return value
    return None


def extract_flow_m3h(text: str) -> Optional[float]:
    return _first_quantity(text, FLOW_PATTERNS)


def extract_head_m(text: str) -> Optional[float]:
    return _first_quantity(text, HEAD_PATTERNS)


def extract_motor_kw(text: str) -> Optional[float]:
    return _first_quantity(text, MOTOR_PATTERNS)


def extract_floors(text: str) -> Optional[int]:
    return _first_count(text, FLOORS_RE)


def extract_bathrooms(text: str) -> Optional[int]:
    return _first_count(text, BATHROOMS_RE)


# ============================================================
# Conversational Cues
# ============================================================

CORRECTION_RE = re.compile(
    r"\b(no[,.]?\s|actually|i\s+meant?|not\s+\w+[,.]?\s*(it'?s|for)|"
    r"change\s+(it\s+)?to|switch\s+to|wrong|correct(?:ion)?|hindi\b)",
    re.IGNORECASE)
GREETING_RE = re.compile(
    r"^\s*(h(ello|i|ey|owdy)|yo\b|sup\b|good\s*(morning|afternoon|evening|day)|"
    r"what'?s?\s*up|greetings|salut|hola|kumusta|magandang\s*(umaga|hapon|gabi))"
    r"\s*[!?.]*\s*$",
    re.IGNORECASE)
OWN_HOME_RE = re.compile(r'\bmy\s+(?:house|home|place)\b', re.IGNORECASE)


def is_correction(text: str) -> bool:
    return bool(text and CORRECTION_RE.search(text))


def is_greeting(text: str) -> bool:
    """True only for a bare greeting with nothing else in the message."""
    return bool(text and GREETING_RE.match(text))


def mentions_own_home(text: str) -> bool:
    return bool(text and OWN_HOME_RE.search(text))


def has_number_with_unit(text: str) -> bool:
    if not text:
        return False
    tables = FLOW_PATTERNS + HEAD_PATTERNS + MOTOR_PATTERNS
    if any(pat.search(text) for pat, _ in tables):
        return True
    return extract_floors(text) is not None or extract_bathrooms(text) is not None


def has_new_signal(text: Optional[str]) -> bool:
    """Does a message carry new requirement data rather than feedback?"""
    if not text:
        return False
    return (
        has_number_with_unit(text)
        or APPLICATION_TABLE.matches_any(text)
        or detect_competitor_brand(text) is not None
    )
