from utils.hashing import verify_password, get_password_hash, validate_password_strength

def test_password_hashing():
    password = "Sup3r$ecretPassword"
    hashed = get_password_hash(password)
    assert hashed != password
    assert hashed.startswith("$2")


def test_password_verification():
    password = "Sup3r$ecretPassword"
    hashed = get_password_hash(password)

    assert verify_password(password, hashed) is True
    assert verify_password("Wr0ng$password", hashed) is False

    # Bcrypt only looks at the first 72 bytes
    long_pass = "Aa1!" * 30
    hashed_long = get_password_hash(long_pass)
    assert verify_password(long_pass, hashed_long) is True


def test_strong_password_passes_policy():
    assert validate_password_strength("TestPassword123!") == []


def test_short_password_rejected():
    errors = validate_password_strength("Aa1!")
    assert any("at least 8" in e for e in errors)


def test_overlong_password_rejected():
    errors = validate_password_strength("Aa1!" * 40)
    assert any("at most 128" in e for e in errors)


def test_password_missing_character_classes():
    errors = validate_password_strength("alllowercase")

    assert "Password must contain at least one uppercase letter" in errors
    assert "Password must contain at least one digit" in errors
    assert "Password must contain at least one special character" in errors
    assert "Password must contain at least one lowercase letter" not in errors
