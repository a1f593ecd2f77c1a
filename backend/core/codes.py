import re

_SEPARATORS = re.compile(r"[\s-]+")


def normalize(code) -> str:
    """Canonical form of an item code: whitespace and hyphens removed, upper-cased.

    This is the only equality key used for item lookup, on both the client
    cache and the authority.
    """
    if code is None:
        return ""
    return _SEPARATORS.sub("", str(code)).upper()
