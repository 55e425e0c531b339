"""
Memoises one value against a token, here the form state store's mutation
counter. Used for FormEngine.is_valid(), which re-runs every mounted
validator and is read on each render.
"""

from typing import TypeVar, Generic, Optional, Callable

T = TypeVar('T')


class SingleValueTokenCache(Generic[T]):
    """Holds the last computed value until ``token_provider()`` changes.

    Example:
        cache = SingleValueTokenCache(lambda: store.token)
        valid = cache.get_or_compute(lambda: all_fields_pass())
    """

    def __init__(self, token_provider: Callable[[], int]):
        self._token_provider = token_provider
        self._cached_value: Optional[T] = None
        self._cached_token: int = -1
        self.compute_count = 0

    def get_or_compute(self, compute_fn: Callable[[], T]) -> T:
        current_token = self._token_provider()

        # Falsy results are cached too, only the token decides
        if current_token == self._cached_token:
            return self._cached_value

        value = compute_fn()
        self.compute_count += 1
        self._cached_value = value
        self._cached_token = current_token
        return value

    def invalidate(self):
        self._cached_value = None
        self._cached_token = -1
