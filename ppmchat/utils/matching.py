from typing import Iterable, Optional


def best_substring_match(text: str, candidates: Iterable[str]) -> Optional[str]:
    """
    Case-insensitive bidirectional containment with a fixed tie-break.

    A candidate containing the text wins over text containing a candidate.
    Among candidates containing the text the shortest wins (closest to what was
    typed); among candidates found inside the text the longest wins (most
    specific). Remaining ties go to alphabetical order.
    """
    needle = (text or "").strip().lower()
    if not needle:
        return None
    options = [c for c in candidates if c]

    wider = [c for c in options if needle in c.lower()]
    if wider:
        return sorted(wider, key=lambda c: (len(c), c))[0]

    inner = [c for c in options if c.lower() in needle]
    if inner:
        return sorted(inner, key=lambda c: (-len(c), c))[0]
    return None
