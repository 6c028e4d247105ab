import hashlib
from collections.abc import Iterable


class Hasher:
    """
    Hasher provides static methods for generating SHA256 hex digests.

    Methods
    -------
    hash_string(input_string: str) -> str
        Returns a SHA256 hash of the input string.
    hash_parts(parts: Iterable[str], separator: str) -> str
        Returns a SHA256 hash of the parts joined by the separator.
    """

    @staticmethod
    def hash_string(input_string: str) -> str:
        """Returns a SHA256 hash of the input string."""

        return hashlib.sha256(input_string.encode("utf-8")).hexdigest()

    @staticmethod
    def hash_parts(parts: Iterable[str], separator: str = "\n") -> str:
        """
        Returns a SHA256 hash of the parts joined by ``separator``.

        The parts are fed incrementally, so the digest equals
        ``hash_string(separator.join(parts))`` without building the string.

        Examples
        --------
        >>> Hasher.hash_parts(["e4", "e5"], " ") == Hasher.hash_string("e4 e5")
        True
        """

        sha256 = hashlib.sha256()
        for index, part in enumerate(parts):
            if index:
                sha256.update(separator.encode("utf-8"))
            sha256.update(part.encode("utf-8"))
        return sha256.hexdigest()
