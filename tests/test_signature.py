#
# DirectCall - Signature Key Tests
#

# Standard library -----------------------------------------------------------------------------------------------------
from typing import Annotated, Callable, Literal, Optional, TypeVar, Union

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.descriptor import MethodDescriptor, describe
from directcall.errors import UnsupportedMethodShape
from directcall.signature import SignatureKey, hint_shape, normalize

T = TypeVar("T")


# Local Classes & Methods ----------------------------------------------------------------------------------------------

class Calc:
    def add(self, a: int, b: int) -> int:
        return a + b

    @staticmethod
    def mul(a: int, b: int) -> int:
        return a * b

    def swap(self, a: int, b: str) -> int:
        return a

    def swapped(self, a: str, b: int) -> int:
        return b

    def to_float(self, a: int, b: int) -> float:
        return a / b

    def maybe(self, a: Optional[int]) -> None:
        pass


class Other:
    def combine(self, x: int, y: int) -> int:
        return x - y


class Counter:
    def value(self) -> int:
        return 0

    def label(self) -> str:
        return "zero"

    def reset(self) -> None:
        pass


def identity(value: T) -> T:
    return value


# Tests ----------------------------------------------------------------------------------------------------------------

class TestNormalize:
    def test_same_shape_same_key(self):
        """Owner, name and calling convention are not part of the key."""
        keys = {
            normalize(describe(Calc, "add")),
            normalize(describe(Calc, "mul")),
            normalize(describe(Other, "combine")),
        }
        assert keys == {SignatureKey((int, int), int)}

    @pytest.mark.parametrize(
        "name",
        [
            pytest.param("swap", id="parameter-types"),
            pytest.param("swapped", id="parameter-order"),
            pytest.param("to_float", id="return-type"),
        ],
    )
    def test_distinct_shape_distinct_key(self, name):
        assert normalize(describe(Calc, name)) != normalize(describe(Calc, "add"))

    def test_zero_parameter_keys_differ_by_return_type(self):
        assert normalize(describe(Counter, "value")) != normalize(describe(Counter, "label"))
        assert normalize(describe(Counter, "reset")) == SignatureKey((), type(None))

    def test_key_is_hashable_and_equal_by_value(self):
        first = normalize(describe(Calc, "maybe"))
        second = SignatureKey((Optional[int],), type(None))
        assert first == second
        assert hash(first) == hash(second)

    def test_arity(self):
        assert normalize(describe(Calc, "add")).arity == 2

    def test_str(self):
        assert str(normalize(describe(Calc, "maybe"))) == "int | None : None"

    def test_generic_definition_rejected(self):
        with pytest.raises(UnsupportedMethodShape, match=r"(?i)generic method definition.*concretize"):
            normalize(describe(identity))

    def test_concretized_generic_accepted(self):
        key = normalize(describe(identity).concretize({T: str}))
        assert key == SignatureKey((str,), str)

    def test_generic_flag_without_type_variables(self):
        """A descriptor flagged generic by its provider is rejected even without type variables."""
        d = MethodDescriptor(None, "f", (int,), int, target=abs, is_static=True, is_generic_definition=True)
        with pytest.raises(UnsupportedMethodShape, match=r"free type parameters: \?"):
            normalize(d)

    def test_unhashable_annotation_rejected(self):
        d = MethodDescriptor(None, "f", (Annotated[int, []],), int, target=abs, is_static=True)
        with pytest.raises(UnsupportedMethodShape, match=r"not hashable"):
            normalize(d)


class TestHintShape:
    @pytest.mark.parametrize(
        "first, second",
        [
            pytest.param(float | complex, complex | float, id="pep604-union"),
            pytest.param(Union[int, str], Union[str, int], id="typing-union"),
            pytest.param(list[float | int], list[int | float], id="nested-union"),
            pytest.param(Literal[1], Literal[True], id="literal-value-type"),
        ],
    )
    def test_order_and_type_sensitive(self, first, second):
        assert hint_shape(first) != hint_shape(second)
        assert SignatureKey((first,), int) != SignatureKey((second,), int)

    @pytest.mark.parametrize(
        "first, second",
        [
            pytest.param(Optional[int], int | None, id="optional-spellings"),
            pytest.param(list[int], list[int], id="generic"),
            pytest.param(Callable[[int], str], Callable[[int], str], id="callable"),
            pytest.param(Annotated[int, "unit"], Annotated[int, "unit"], id="annotated"),
        ],
    )
    def test_equal_annotations_share_shape(self, first, second):
        assert hint_shape(first) == hint_shape(second)
        assert hash(SignatureKey((first,), int)) == hash(SignatureKey((second,), int))

    def test_plain_class_is_its_own_shape(self):
        assert hint_shape(int) is int
