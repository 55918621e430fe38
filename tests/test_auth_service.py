from app.services.auth_service import format_denial, is_authorized


class TestIsAuthorized:
    def test_owner_matches(self):
        assert is_authorized(8343591065, "8343591065") is True

    def test_string_and_int_ids_compare_equal(self):
        assert is_authorized("8343591065", " 8343591065 ") is True

    def test_stranger_denied(self):
        assert is_authorized(111, "8343591065") is False

    def test_fallback_identity(self):
        assert is_authorized(111, "8343591065", fallback_identity="111") is True

    def test_empty_values_never_match(self):
        assert is_authorized(None, "8343591065") is False
        assert is_authorized("", "") is False
        assert is_authorized(111, None, None) is False


class TestFormatDenial:
    def test_includes_actor_id(self):
        assert format_denial(42) == "⚠️ Acceso denegado. Tu ID es 42."
