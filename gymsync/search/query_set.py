import re
from typing import List, Optional

from gymsync.extractors.region import extract_region

DOMAIN_QUALIFIERS = ["헬스장", "피트니스"]

_PARENTHESISED = re.compile(r"\([^)]*\)|\[[^\]]*\]")
_BRANCH_SUFFIX = re.compile(r"\s+\S+점$")
_PUNCTUATION = re.compile(r"[^\w\s]")
_GYM_WORD = re.compile(r"짐|gym", re.IGNORECASE)


def simplify_name(name: str) -> str:
    """
    Strip the parts of a gym name that search engines rarely index.

    For example "바디짐 (Body Gym) 강남점" becomes "바디짐".
    """
    simplified = _PARENTHESISED.sub(" ", name)
    simplified = _PUNCTUATION.sub(" ", simplified)
    simplified = " ".join(simplified.split())
    simplified = _BRANCH_SUFFIX.sub("", simplified)
    return simplified or name.strip()


def expand_queries(name: str, address: Optional[str] = None) -> List[str]:
    """
    Generate query variants for one gym, most specific last.

    Args:
        name (str): Gym name.
        address (Optional[str]): Address used to derive a locality qualifier.

    Returns:
        List[str]: Distinct queries, in the order they should be tried.
    """
    name = name.strip()
    queries = [name]
    queries.extend(f"{name} {qualifier}" for qualifier in DOMAIN_QUALIFIERS)

    region = extract_region(address)
    if region:
        queries.extend(f"{name} {region} {qualifier}" for qualifier in DOMAIN_QUALIFIERS)
        queries.append(f"{region} {name}")

    if _GYM_WORD.search(name):
        queries.append(_GYM_WORD.sub(DOMAIN_QUALIFIERS[0], name))

    # dict preserves first-seen order
    return list(dict.fromkeys(q for q in queries if q))
