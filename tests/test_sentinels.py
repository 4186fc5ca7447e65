#
# DirectCall - Sentinels Tests
#

# Standard library -----------------------------------------------------------------------------------------------------
import pickle

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.sentinels import (
    VOID, NOT_FOUND, UNSET,
    VoidType, NotFoundType, UnsetType,
)


# Tests ----------------------------------------------------------------------------------------------------------------

class TestSentinels:
    def test_singleton_identity(self):
        """Ensure each sentinel is a singleton object."""
        assert VOID is VoidType()
        assert NOT_FOUND is NotFoundType()
        assert UNSET is UnsetType()

    @pytest.mark.parametrize(
        ("sentinel", "expected"),
        [
            pytest.param(VOID, "<VOID>", id="void"),
            pytest.param(NOT_FOUND, "<NOT_FOUND>", id="not_found"),
            pytest.param(UNSET, "<UNSET>", id="unset"),
        ],
    )
    def test_repr_clean(self, sentinel, expected):
        """Assert repr shows clean angle-bracketed name."""
        assert repr(sentinel) == expected

    @pytest.mark.parametrize(
        ("sentinel",),
        [
            pytest.param(VOID, id="void"),
            pytest.param(NOT_FOUND, id="not_found"),
            pytest.param(UNSET, id="unset"),
        ],
    )
    def test_falsy_and_identity_hash(self, sentinel):
        """Sentinels are falsy and hash by identity."""
        assert not sentinel
        assert hash(sentinel) == id(sentinel)

    def test_void_is_not_none(self):
        """VOID never compares equal to None or to other sentinels."""
        assert VOID != None  # noqa: E711
        assert VOID != NOT_FOUND
        assert VOID is not None

    @pytest.mark.parametrize(
        ("sentinel",),
        [
            pytest.param(VOID, id="void"),
            pytest.param(NOT_FOUND, id="not_found"),
            pytest.param(UNSET, id="unset"),
        ],
    )
    def test_pickle_roundtrip(self, sentinel):
        """Ensure pickling preserves singleton identity."""
        data = pickle.dumps(sentinel, protocol=pickle.HIGHEST_PROTOCOL)
        assert pickle.loads(data) is sentinel
