"""
Décodage des corps application/x-www-form-urlencoded

En mode étendu, les clés à crochets décrivent des structures imbriquées :
``user[name]=Ada&tags[]=a&tags[]=b`` donne
``{"user": {"name": "Ada"}, "tags": ["a", "b"]}``.
"""
import re
from typing import Any, Dict, List
from urllib.parse import parse_qsl

_BRACKETS = re.compile(r"\[([^\[\]]*)\]")
_INDEX = re.compile(r"[0-9]+")


class TooManyParameters(ValueError):
    """Le corps contient plus de paires clé/valeur que la limite autorisée"""

    def __init__(self, limit: int):
        super().__init__(f"too many parameters (limit {limit})")
        self.limit = limit


class _Node(dict):
    # Les clés entières marquent des positions de liste.
    def next_index(self) -> int:
        indexes = [key for key in self if isinstance(key, int)]
        return max(indexes) + 1 if indexes else 0


def split_key(key: str, depth: int) -> List[str]:
    """
    Découpe une clé à crochets en segments

    ``a[b][]`` donne ``["a", "b", ""]``. Au-delà de ``depth`` segments,
    le reste de la clé est conservé tel quel comme dernier segment.
    """
    match = _BRACKETS.search(key)
    if match is None or depth <= 0:
        return [key]

    segments = []
    if match.start() > 0:
        segments.append(key[:match.start()])

    for _ in range(depth):
        segments.append(match.group(1))
        following = _BRACKETS.search(key, match.end())
        if following is None:
            return segments
        match = following

    segments.append(key[match.start():])
    return segments


def _insert(root: _Node, segments: List[str], value: str, array_limit: int) -> None:
    node = root
    for position, segment in enumerate(segments):
        key: Any = segment
        if position > 0:
            if segment == "":
                key = node.next_index()
            elif _INDEX.fullmatch(segment) and int(segment) <= array_limit:
                key = int(segment)

        if position == len(segments) - 1:
            if key not in node:
                node[key] = value
            elif isinstance(node[key], list):
                node[key].append(value)
            else:
                node[key] = [node[key], value]
            return

        child = node.get(key)
        if isinstance(child, _Node):
            node = child
            continue

        created = _Node()
        if child is None:
            node[key] = created
        elif isinstance(child, list):
            child.append(created)
        else:
            node[key] = [child, created]
        node = created


def _finalize(value: Any) -> Any:
    if isinstance(value, list):
        return [_finalize(item) for item in value]
    if not isinstance(value, _Node):
        return value
    if value and all(isinstance(key, int) for key in value):
        return [_finalize(value[key]) for key in sorted(value)]
    return {str(key): _finalize(item) for key, item in value.items()}


def _count_parameters(text: str) -> int:
    return text.count("&") + 1 if text else 0


def parse_urlencoded(
    text: str,
    *,
    extended: bool = True,
    depth: int = 32,
    parameter_limit: int = 1000,
    array_limit: int = 100,
) -> Dict[str, Any]:
    """
    Décode un corps URL-encodé

    Args:
        text: Corps décodé en texte
        extended: Active les clés imbriquées à crochets
        depth: Nombre maximal de segments imbriqués
        parameter_limit: Nombre maximal de paires
        array_limit: Plus grand index traité comme position de liste
            (relevé au nombre de paires du corps si celui-ci est plus grand)

    Returns:
        Dictionnaire des valeurs ; les clés répétées deviennent des listes

    Raises:
        TooManyParameters: Si le corps dépasse ``parameter_limit`` paires
    """
    parameter_count = _count_parameters(text)
    if parameter_count > parameter_limit:
        raise TooManyParameters(parameter_limit)

    pairs = parse_qsl(text, keep_blank_values=True)

    if not extended:
        flat: Dict[str, Any] = {}
        for key, value in pairs:
            if key not in flat:
                flat[key] = value
            elif isinstance(flat[key], list):
                flat[key].append(value)
            else:
                flat[key] = [flat[key], value]
        return flat

    root = _Node()
    for key, value in pairs:
        if not key:
            continue
        _insert(root, split_key(key, depth), value, max(array_limit, parameter_count))

    return {str(key): _finalize(item) for key, item in root.items()}
