"""Tests for s3input/lib/partition.py - work assignment across executors."""

import pytest

from s3input.lib.partition import (
    HASHERS,
    Md5Hasher,
    Partitioner,
    Polynomial31Hasher,
    get_hasher,
)


class TestHashers:
    """Tests for the key hash functions."""

    def test_polynomial31_known_values(self):
        """h = h * 31 + code point, starting from zero."""
        hasher = Polynomial31Hasher()
        assert hasher("") == 0
        assert hasher("a") == 97
        assert hasher("ab") == 97 * 31 + 98
        assert hasher("abc") == 96354

    def test_polynomial31_does_not_overflow(self):
        """Long keys produce large non-negative integers."""
        value = Polynomial31Hasher()("logs/20240115/" + "x" * 200)
        assert value > 2**64

    def test_md5_is_stable(self):
        """MD5 hashing is deterministic and non-negative."""
        hasher = Md5Hasher()
        assert hasher("logs/a.log") == hasher("logs/a.log")
        assert hasher("logs/a.log") >= 0
        assert hasher("logs/a.log") != hasher("logs/b.log")

    def test_registry(self):
        """Hashers are looked up by name."""
        assert set(HASHERS) == {"polynomial31", "md5"}
        assert isinstance(get_hasher("md5"), Md5Hasher)

    def test_unknown_hasher(self):
        """Unknown names raise KeyError listing the valid options."""
        with pytest.raises(KeyError, match="polynomial31"):
            get_hasher("sha1")


class TestPartitioner:
    """Tests for Partitioner."""

    def test_single_executor_owns_everything(self):
        """With one executor every key is local."""
        p = Partitioner(total_executors=1)
        assert all(p.is_local(k) for k in ["a", "b", "logs/x.gz", ""])

    def test_partition_for(self):
        """Partition is the hash modulo the fleet size."""
        p = Partitioner(total_executors=4, executor_slot=2)
        assert p.partition_for("abc") == 96354 % 4 == 2
        assert p.is_local("abc")

    def test_locality_uses_executor_slot(self):
        """Keys are local only to the executor whose slot matches."""
        owners = [
            slot
            for slot in range(4)
            if Partitioner(total_executors=4, executor_slot=slot).is_local("abc")
        ]
        assert owners == [2]

    def test_every_key_has_exactly_one_owner(self):
        """A fleet covers each key exactly once."""
        fleet = [Partitioner(total_executors=3, executor_slot=s) for s in range(3)]
        keys = [f"logs/20240115/part-{i:04d}.log" for i in range(50)]
        for key in keys:
            assert sum(p.is_local(key) for p in fleet) == 1

    def test_assignment_is_pure(self):
        """Separate instances agree on every key."""
        a = Partitioner(total_executors=5, executor_slot=1, hasher=Md5Hasher())
        b = Partitioner(total_executors=5, executor_slot=1, hasher=Md5Hasher())
        keys = [f"k{i}" for i in range(20)]
        assert [a.partition_for(k) for k in keys] == [b.partition_for(k) for k in keys]

    @pytest.mark.parametrize(
        "total,slot",
        [(0, 0), (-1, 0), (2, 2), (2, -1)],
    )
    def test_invalid_arguments(self, total, slot):
        """Fleet size must be positive and the slot inside it."""
        with pytest.raises(ValueError):
            Partitioner(total_executors=total, executor_slot=slot)
