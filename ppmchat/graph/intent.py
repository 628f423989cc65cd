import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

# (intent, pattern) in priority order; first hit across the whole table wins.
# English and Hebrew surface forms for the same intent live side by side.
FOLLOW_UP_PATTERNS: List[Tuple[str, Pattern]] = [
    # drill-down from a chart
    ("showSelected", re.compile(r"\bshow\s*(me\s*)?(the\s*)?(\w+)\s*ones?")),   # "show me the active ones"
    ("showSelected", re.compile(r"\blist\s*(the\s*)?(\w+)\s*ones?")),           # "list the completed ones"
    ("showSelected", re.compile(r"\bget\s*(me\s*)?(the\s*)?(\w+)")),            # "get me the active"
    ("showSelected", re.compile(r"\bwhich\s*(ones?\s*)?(are\s*)?(\w+)")),       # "which are active"
    ("showSelected", re.compile(r"הראה\s*(לי\s*)?(את\s*)?(ה)?(\w+)")),        # "show me the ..."
    # export
    ("export", re.compile(r"\bexport\s*(them|this|these|it)?(\s*to\s*excel)?")),
    ("export", re.compile(r"\bdownload")),
    ("export", re.compile(r"ייצא")),
    # count
    ("count", re.compile(r"\bhow\s*many\s*(total|are\s*there)?")),
    ("count", re.compile(r"\bcount\s*(them|all)?")),
    ("count", re.compile(r"כמה")),
    # more details
    ("details", re.compile(r"\btell\s*me\s*more")),
    ("details", re.compile(r"\bmore\s*details?")),
    ("details", re.compile(r"\bexpand")),
    ("details", re.compile(r"פרטים")),
    # filter changes
    ("filter", re.compile(r"\bfilter\s*(by|where)")),
    ("filter", re.compile(r"\bonly\s*(show\s*)?(the\s*)?")),
    ("filter", re.compile(r"\bwhere\s+(\w+)\s*(is|=|equals)")),
    # deep link
    ("link", re.compile(r"\blink\s*(to\s*)?(this|them|it)?")),
    ("link", re.compile(r"\bopen\s*(in\s*)?clarity")),
    ("link", re.compile(r"\burl")),
    ("link", re.compile(r"לינק")),
]

GREETING = re.compile(r"^(hi|hello|hey|help|שלום|היי)[\s!.?]*$", re.IGNORECASE)

_CATALOG_EXCLUDES = ["create", "new", "add", "describe", "fields", "תאר", "שדות"]
_LINK_EXCLUDES = ["create", "new"]


@dataclass(frozen=True)
class Intent:
    type: Optional[str] = None
    extracted_value: Optional[str] = None


def classify(message: str) -> Intent:
    t = (message or "").lower()
    for intent_type, pattern in FOLLOW_UP_PATTERNS:
        m = pattern.search(t)
        if not m:
            continue
        value = None
        for group in reversed(m.groups()):
            if group and group.strip():
                value = group.strip()
                break
        return Intent(intent_type, value)
    return Intent()


def is_greeting(message: str) -> bool:
    return bool(GREETING.match((message or "").strip()))


def mentions_creation(message: str) -> bool:
    t = (message or "").lower()
    return any(w in t for w in _LINK_EXCLUDES)


def is_link_request(message: str) -> bool:
    return "link" in (message or "").lower() and not mentions_creation(message)


def is_custom_object_catalog(message: str) -> bool:
    t = (message or "").lower()
    return "custom object" in t and not any(w in t for w in _CATALOG_EXCLUDES)

