import hashlib

from chessdb.game_hashes import build_moves_hash
from chessdb.utils.hasher import Hasher


def test_hash_string_matches_sha256() -> None:
    payload = "chessdb"
    expected = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    assert Hasher.hash_string(payload) == expected


def test_hash_parts_matches_joined_string() -> None:
    parts = ["e4", "e5", "Nf3"]
    assert Hasher.hash_parts(parts, " ") == Hasher.hash_string("e4 e5 Nf3")
    assert Hasher.hash_parts(parts) == Hasher.hash_string("e4\ne5\nNf3")
    assert Hasher.hash_parts([]) == Hasher.hash_string("")


def test_moves_hash_is_sha256_of_space_joined_san() -> None:
    expected = hashlib.sha256(b"d4 d5 c4").hexdigest()
    assert build_moves_hash(["d4", "d5", "c4"]) == expected
