"""
Nearby-POI classification.

Sorts raw places-provider items into eight fixed buckets. Each item goes
through an ordered chain of classifiers, first match wins:

    1. category code    provider category IDs against prefix rules
    2. category name    keyword scan of the provider's category names
    3. title            keyword scan of the place's own name
    4. default          "services"

A transit result is then double-checked: only places that are actually a
station/stop/terminal stay in transit, so a cafe tagged with a
transit-adjacent category is re-read by its name instead.

Display naming is a separate stage (decorate_name) that runs after a
bucket has been chosen and never influences classification.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from geo_math import Coordinate, InvalidCoordinates, coerce_coordinate, distance_meters, format_distance_km

logger = logging.getLogger(__name__)

RESTAURANTS = "restaurants"
RETAIL = "retail"
FUEL = "fuel"
SCHOOLS = "schools"
HEALTHCARE = "healthcare"
TRANSIT = "transit"
ENTERTAINMENT = "entertainment"
SERVICES = "services"

POI_CATEGORIES = (
    RESTAURANTS, RETAIL, FUEL, SCHOOLS, HEALTHCARE, TRANSIT, ENTERTAINMENT, SERVICES,
)
DEFAULT_CATEGORY = SERVICES
UNNAMED_PLACE = "Unnamed place"


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PoiCategory:
    id: str
    name: str


@dataclass(frozen=True)
class PlaceRecord:
    """A provider item reduced to the fields classification needs."""
    title: str
    position: Coordinate
    address: str = "Unknown address"
    categories: Tuple[PoiCategory, ...] = ()

    @property
    def category_ids(self) -> List[str]:
        return [c.id for c in self.categories if c.id]

    @property
    def category_names(self) -> List[str]:
        return [c.name for c in self.categories if c.name]


@dataclass(frozen=True)
class Poi:
    name: str                       # display name (may be decorated)
    title: str                      # provider title, unmodified
    address: str
    distance: str                   # "1.2 km"
    distance_meters: float
    category: str
    position: Coordinate
    categories: Tuple[PoiCategory, ...] = field(default_factory=tuple)


# =============================================================================
# RULE TABLES
# =============================================================================

@dataclass(frozen=True)
class CodeRule:
    code: str
    category: str
    exact: bool = False

    def matches(self, category_id: str) -> bool:
        if self.exact:
            return category_id == self.code
        return category_id.startswith(self.code)


# Order matters: specific codes before the group prefix that contains them.
CODE_RULES: Tuple[CodeRule, ...] = (
    CodeRule("800-81", SCHOOLS),
    CodeRule("800-82", SCHOOLS),
    CodeRule("600", TRANSIT),
    CodeRule("400-4100", TRANSIT),      # HERE public transport
    CodeRule("100", RESTAURANTS),
    CodeRule("200", RETAIL),
    CodeRule("700-7600-0116", FUEL, exact=True),
    CodeRule("400", ENTERTAINMENT),
    CodeRule("300", ENTERTAINMENT),
    CodeRule("700", SERVICES),
    CodeRule("800", HEALTHCARE),
)

# Scan order for keyword matching. Fuel precedes transit ("gas station"),
# schools precede healthcare ("medical school"), healthcare precedes
# retail ("pharmacy store").
KEYWORD_ORDER = (FUEL, SCHOOLS, HEALTHCARE, TRANSIT, RESTAURANTS, RETAIL, ENTERTAINMENT, SERVICES)

CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    FUEL: (
        "gas station", "petrol", "fuel", "filling station", "gas", "gasoline",
        "ev charging", "truck stop",
    ),
    SCHOOLS: (
        "school", "academy", "college", "university", "kindergarten", "preschool",
        "daycare", "day care", "child care", "childcare", "montessori", "education",
        "institute", "campus", "learning center", "tutoring",
    ),
    HEALTHCARE: (
        "hospital", "clinic", "pharmacy", "drugstore", "medical", "doctor", "dentist",
        "dental", "health", "physician", "urgent care", "optometrist", "chiropractor",
        "physiotherapy", "physical therapy", "pediatrics", "orthodontist", "emergency room",
    ),
    TRANSIT: (
        "station", "stop", "terminal", "transit", "bus", "train", "railway", "rail",
        "subway", "metro", "tram", "light rail", "ferry", "platform", "depot",
    ),
    RESTAURANTS: (
        "restaurant", "cafe", "café", "coffee", "bakery", "bar", "pub", "diner",
        "pizza", "pizzeria", "grill", "bistro", "eatery", "sushi", "burger", "deli",
        "tavern", "brewery", "steakhouse", "taqueria", "fast food", "ice cream",
        "food", "kitchen", "tea house",
    ),
    RETAIL: (
        "shop", "store", "market", "mall", "boutique", "outlet", "supermarket",
        "grocery", "retail", "clothing", "hardware", "bookstore", "department store",
        "convenience", "florist", "jewelry", "electronics",
    ),
    ENTERTAINMENT: (
        "cinema", "theater", "theatre", "movie", "museum", "gallery", "casino",
        "bowling", "arcade", "stadium", "arena", "nightclub", "concert", "zoo",
        "amusement", "entertainment", "recreation", "gym", "fitness", "golf",
        "sports", "aquarium", "park",
    ),
    SERVICES: (
        "bank", "atm", "salon", "barber", "laundry", "laundromat", "dry cleaning",
        "post office", "insurance", "lawyer", "attorney", "real estate", "repair",
        "car wash", "veterinary", "veterinarian", "spa", "service", "office",
        "agency", "storage", "locksmith", "plumber",
    ),
}

# Words that mark an actual boarding point rather than something near one
TRANSIT_POINT_KEYWORDS = (
    "station", "stop", "terminal", "terminus", "platform", "depot", "halt",
    "interchange", "transit center", "transit centre", "park and ride", "park & ride",
)


# Head nouns that say little on their own ("Barber Shop", "Stop & Shop",
# "Health Food Store"). They only decide when no specific keyword matches.
GENERIC_KEYWORDS = frozenset({
    "shop", "store", "market", "station", "stop", "service", "office", "food", "health",
})


def _keyword_pattern(keywords: Iterable[str]) -> "re.Pattern[str]":
    # Whole words only (so "bar" never matches "barber"), optional plural
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})(?:s|es)?\b", re.IGNORECASE)


_CATEGORY_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    cat: _keyword_pattern([w for w in words if w not in GENERIC_KEYWORDS])
    for cat, words in CATEGORY_KEYWORDS.items()
}
_GENERIC_PATTERNS: Dict[str, "re.Pattern[str]"] = {}
for _cat, _words in CATEGORY_KEYWORDS.items():
    _generic = [w for w in _words if w in GENERIC_KEYWORDS]
    if _generic:
        _GENERIC_PATTERNS[_cat] = _keyword_pattern(_generic)
_TRANSIT_POINT_PATTERN = _keyword_pattern(TRANSIT_POINT_KEYWORDS)


def keyword_category(text: str, order: Iterable[str] = KEYWORD_ORDER) -> Optional[str]:
    """Bucket whose keywords match *text*.

    Specific keywords win, first bucket in *order*. Failing that, the
    generic word that ends last in the text decides, since the head noun
    of a place name comes last ("Stop & Shop" is a shop).
    """
    if not text:
        return None
    order = tuple(order)
    for cat in order:
        if _CATEGORY_PATTERNS[cat].search(text):
            return cat

    best, best_end = None, -1
    for cat in order:
        pattern = _GENERIC_PATTERNS.get(cat)
        if pattern is None:
            continue
        for match in pattern.finditer(text):
            if match.end() > best_end:
                best, best_end = cat, match.end()
    return best


# =============================================================================
# CLASSIFIER CHAIN
# =============================================================================

def match_category_code(place: PlaceRecord) -> Optional[str]:
    ids = place.category_ids
    if not ids:
        return None
    for rule in CODE_RULES:
        if any(rule.matches(cid) for cid in ids):
            return rule.category
    return None


def match_category_keywords(place: PlaceRecord) -> Optional[str]:
    for name in place.category_names:
        cat = keyword_category(name)
        if cat:
            return cat
    return None


def match_title_keywords(place: PlaceRecord) -> Optional[str]:
    return keyword_category(place.title)


CLASSIFIERS: Tuple[Callable[[PlaceRecord], Optional[str]], ...] = (
    match_category_code,
    match_category_keywords,
    match_title_keywords,
)


def is_transit_point(place: PlaceRecord) -> bool:
    texts = [place.title] + place.category_names
    return any(_TRANSIT_POINT_PATTERN.search(t) for t in texts if t)


def disambiguate_transit(place: PlaceRecord) -> str:
    """Keep real stations in transit; re-read everything else by name."""
    if is_transit_point(place):
        return TRANSIT
    non_transit = tuple(c for c in KEYWORD_ORDER if c != TRANSIT)
    return keyword_category(place.title, non_transit) or DEFAULT_CATEGORY


def classify_place(place: PlaceRecord) -> str:
    category = None
    for classifier in CLASSIFIERS:
        category = classifier(place)
        if category:
            break
    if not category:
        category = DEFAULT_CATEGORY

    if category == TRANSIT:
        category = disambiguate_transit(place)
    return category


# =============================================================================
# NAME DECORATION
# =============================================================================

_CREDENTIAL_RE = re.compile(r"(?:,\s*|\s)(?:MD|M\.D\.|DO|D\.O\.|NP|FNP|PA-C|DPM|OD)\b")
_DENTAL_CREDENTIAL_RE = re.compile(r"(?:,\s*|\s)(?:DDS|D\.D\.S\.|DMD|D\.M\.D\.)\b")
_DR_PREFIX_RE = re.compile(r"^\s*Dr\.?\s", re.IGNORECASE)

_SCHOOL_OBVIOUS = _keyword_pattern((
    "school", "academy", "college", "university", "institute", "kindergarten",
    "preschool", "daycare", "day care", "montessori", "campus", "learning",
))
_HEALTH_OBVIOUS = _keyword_pattern((
    "hospital", "clinic", "medical", "health", "pharmacy", "drugstore", "drug",
    "dental", "dentist", "doctor", "physician", "urgent care", "care center",
    "optometry", "chiropractic", "therapy", "pediatrics", "orthodontics", "surgery",
))
_RESTAURANT_OBVIOUS = _keyword_pattern((
    "restaurant", "cafe", "café", "coffee", "bar", "pub", "grill", "pizza",
    "pizzeria", "bakery", "diner", "bistro", "kitchen", "eatery", "sushi",
    "burger", "taqueria", "deli", "brewery", "tavern", "steakhouse", "tea",
    "ice cream",
))
_MODE_OBVIOUS = _keyword_pattern((
    "bus", "train", "rail", "railway", "subway", "metro", "tram", "streetcar",
    "light rail", "ferry", "underground", "commuter",
))


def _has(pattern: "re.Pattern[str]", texts: Iterable[str]) -> bool:
    return any(pattern.search(t) for t in texts if t)


def _words(*keywords: str) -> "re.Pattern[str]":
    return _keyword_pattern(keywords)


def infer_transit_mode(texts: List[str]) -> Optional[str]:
    """Transit mode from category names and title, most specific first."""
    if _has(_words("commuter", "commuter rail", "regional rail"), texts):
        return "Commuter Rail"
    if _has(_words("subway", "underground"), texts):
        return "Subway"
    if _has(_words("light rail", "tram", "streetcar", "trolley"), texts):
        return "Light Rail"
    if _has(_words("metro"), texts):
        return "Metro"
    if _has(_words("train", "rail", "railway"), texts):
        return "Train"
    if _has(_words("ferry", "water taxi"), texts):
        return "Ferry"
    if _has(_words("bus", "coach"), texts):
        return "Bus"
    return None


def _healthcare_suffix(title: str, names: List[str]) -> str:
    if _DENTAL_CREDENTIAL_RE.search(title) or _has(_words("dentist", "dental"), names):
        return "Dental Office"
    if _CREDENTIAL_RE.search(title) or _DR_PREFIX_RE.search(title):
        return "Doctor's Office"
    if _has(_words("pharmacy", "drugstore", "chemist"), names):
        return "Pharmacy"
    if _has(_words("hospital"), names):
        return "Hospital"
    if _has(_words("urgent care"), names):
        return "Urgent Care"
    if _has(_words("clinic"), names):
        return "Clinic"
    return "Medical Office"


def _school_suffix(names: List[str]) -> str:
    if _has(_words("university", "college"), names):
        return "College"
    if _has(_words("preschool", "kindergarten", "daycare", "day care", "child care", "childcare"), names):
        return "Preschool"
    return "School"


def _restaurant_suffix(names: List[str]) -> str:
    if _has(_words("coffee", "cafe", "café", "tea"), names):
        return "Café"
    if _has(_words("bar", "pub", "brewery", "wine", "cocktail"), names):
        return "Bar"
    if _has(_words("bakery"), names):
        return "Bakery"
    if _has(_words("fast food"), names):
        return "Fast Food"
    return "Restaurant"


def decorate_name(title: str, category: str, category_names: Optional[List[str]] = None) -> str:
    """Display name that makes the place's kind obvious.

    "Main St Clinic" stays as is; "Jane Doe, MD" becomes
    "Jane Doe, MD (Doctor's Office)"; a stop without a mode word gets a
    "<Mode> - " prefix. Retail, fuel, entertainment and services are
    never changed.
    """
    names = list(category_names or [])
    title = (title or "").strip()
    if not title:
        return title

    if category == HEALTHCARE:
        if _HEALTH_OBVIOUS.search(title):
            return title
        return f"{title} ({_healthcare_suffix(title, names)})"

    if category == SCHOOLS:
        if _SCHOOL_OBVIOUS.search(title):
            return title
        return f"{title} ({_school_suffix(names)})"

    if category == RESTAURANTS:
        if _RESTAURANT_OBVIOUS.search(title):
            return title
        return f"{title} ({_restaurant_suffix(names)})"

    if category == TRANSIT:
        if _MODE_OBVIOUS.search(title):
            return title
        mode = infer_transit_mode(names + [title])
        return f"{mode} - {title}" if mode else title

    return title


# =============================================================================
# PARSING & AGGREGATION
# =============================================================================

def empty_collection() -> Dict[str, List[Poi]]:
    """All eight buckets present and empty."""
    return {cat: [] for cat in POI_CATEGORIES}


def parse_place(item: Dict[str, Any]) -> Optional[PlaceRecord]:
    """Reduce a HERE browse item; None when it has no usable position.

    Untitled places are kept under UNNAMED_PLACE so they still land in a bucket.
    """
    if not isinstance(item, dict):
        return None
    title = str(item.get("title") or "").strip() or UNNAMED_PLACE
    try:
        position = coerce_coordinate(item.get("position") or {})
    except InvalidCoordinates:
        return None

    address = item.get("address") or {}
    label = address.get("label") if isinstance(address, dict) else None

    categories = []
    for raw in item.get("categories") or []:
        if isinstance(raw, dict):
            categories.append(PoiCategory(id=str(raw.get("id") or ""), name=str(raw.get("name") or "")))

    return PlaceRecord(
        title=title,
        position=position,
        address=label or "Unknown address",
        categories=tuple(categories),
    )


def build_poi(place: PlaceRecord, origin: Coordinate) -> Poi:
    category = classify_place(place)
    meters = distance_meters(origin, place.position)
    return Poi(
        name=decorate_name(place.title, category, place.category_names),
        title=place.title,
        address=place.address,
        distance=format_distance_km(meters),
        distance_meters=meters,
        category=category,
        position=place.position,
        categories=place.categories,
    )


def classify_pois(items: Iterable[Dict[str, Any]], origin: Coordinate) -> Dict[str, List[Poi]]:
    """Bucket provider items around *origin*; each bucket nearest-first."""
    collection = empty_collection()
    skipped = 0
    for item in items:
        place = parse_place(item)
        if place is None:
            skipped += 1
            continue
        poi = build_poi(place, origin)
        collection[poi.category].append(poi)

    if skipped:
        logger.info("Skipped %d malformed place items", skipped)

    for cat in POI_CATEGORIES:
        collection[cat].sort(key=lambda p: p.distance_meters)
    return collection


def serialize_collection(collection: Dict[str, List[Poi]]) -> Dict[str, List[Dict[str, Any]]]:
    """JSON-ready form of a POI collection; always has all eight keys."""
    out: Dict[str, List[Dict[str, Any]]] = {}
    for cat in POI_CATEGORIES:
        out[cat] = [
            {
                "name": p.name,
                "title": p.title,
                "address": p.address,
                "distance": p.distance,
                "distance_meters": round(p.distance_meters, 1),
                "position": p.position.to_dict(),
                "categories": [{"id": c.id, "name": c.name} for c in p.categories],
            }
            for p in collection.get(cat, [])
        ]
    return out
