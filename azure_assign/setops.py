"""
Set operations over ordered sequences with pluggable equality.

Elements are compared with a predicate, a key function or plain ``==``.
Order of the first sequence is always preserved.
"""

from typing import Callable, Any, List, Optional, Sequence, Tuple, TypeVar, Union

T = TypeVar('T')
U = TypeVar('U')

Key = Union[str, Callable[[Any], Any]]
Equals = Callable[[Any, Any], bool]


def make_equals(key: Optional[Key] = None, equals: Optional[Equals] = None) -> Equals:
    """
    Build the equality predicate used by difference and intersection.

    Args:
        key: Attribute name or function extracting the comparison key
        equals: Explicit predicate called as equals(x, y)

    Returns:
        Predicate returning True when x and y match

    Raises:
        ValueError: If both key and equals are given
    """
    if key is not None and equals is not None:
        raise ValueError("Specify either key or equals, not both")

    if equals is not None:
        return equals

    if isinstance(key, str):
        attr = key
        return lambda x, y: getattr(x, attr) == getattr(y, attr)

    if key is not None:
        key_fn = key
        return lambda x, y: key_fn(x) == key_fn(y)

    return lambda x, y: x == y


def difference(a: Sequence[T], b: Sequence[Any], key: Optional[Key] = None,
               equals: Optional[Equals] = None) -> List[T]:
    """
    Return all items of ``a`` that have no match in ``b``.

    Example:
        >>> difference([1, 2, 3], [2])
        [1, 3]
    """
    eq = make_equals(key, equals)
    return [x for x in a if not any(eq(x, y) for y in b)]


def intersection(a: Sequence[T], b: Sequence[U], key: Optional[Key] = None,
                 equals: Optional[Equals] = None) -> List[Tuple[T, U]]:
    """
    Return ``(x, y)`` pairs for every item of ``a`` that matches an item of ``b``.

    Pairs are returned because matching elements may be distinct objects.
    Only the first match in ``b`` is paired with each ``x``.
    """
    eq = make_equals(key, equals)
    pairs = []
    for x in a:
        for y in b:
            if eq(x, y):
                pairs.append((x, y))
                break
    return pairs
