import pytest

from assetguard.core.exceptions import NotFoundError, ValidationError
from assetguard.utils import parse_id


@pytest.mark.parametrize("value, expected", [(5, 5), ("12", 12), (" 7 ", 7), (0, 0)])
def test_parse_id_accepts_numbers(value, expected):
    assert parse_id(value) == expected


@pytest.mark.parametrize("value", ["abc", "", "1.5", "-3", -1, True, None, 2.0])
def test_parse_id_rejects_everything_else(value):
    with pytest.raises(ValidationError) as exc_info:
        parse_id(value, "role_id")
    assert exc_info.value.details == {"role_id": value}
    assert exc_info.value.status_code == 400


def test_error_body():
    error = NotFoundError("Role")
    assert error.message == "Role not found"
    assert error.to_dict() == {"error": "not_found", "message": "Role not found"}
