from travelmap.utils.i18n import continent_name, country_name, flag_emoji
from travelmap.utils.password import check_password, is_configured, sha256_base64

SECRET_HASH = "K7gNU3sdo+OL0wNhqoVWhr3g6s1xYv72ol/pe/Unols="


def test_sha256_base64():
    assert sha256_base64("secret") == SECRET_HASH


def test_plain_password():
    assert check_password("secret", plain="secret")
    assert not check_password("Secret", plain="secret")


def test_hashed_password():
    assert check_password("secret", hashed=SECRET_HASH)
    assert not check_password("wrong", hashed=SECRET_HASH)


def test_either_password_is_accepted_when_both_are_set():
    assert check_password("secret", plain="plainpw", hashed=SECRET_HASH)
    assert check_password("plainpw", plain="plainpw", hashed=SECRET_HASH)
    assert not check_password("neither", plain="plainpw", hashed=SECRET_HASH)


def test_unconfigured_gate_rejects_everything():
    assert not is_configured("", "")
    assert not check_password("anything")
    assert is_configured("", SECRET_HASH)


def test_display_names():
    assert country_name("ge") == "Грузия"
    assert country_name("XK", "Kosovo") == "Kosovo"
    assert country_name("GE", "Georgia", language="en") == "Georgia"
    assert continent_name("South America") == "Южная Америка"
    assert continent_name("Atlantis") == "Atlantis"


def test_flag_emoji():
    assert flag_emoji("ge") == "\U0001F1EC\U0001F1EA"
    assert flag_emoji("") == ""
    assert flag_emoji("G1") == ""
