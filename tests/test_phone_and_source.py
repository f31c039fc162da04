from formrelay.domain.phone import is_valid_phone, normalize_phone
from formrelay.domain.request import (
    determine_source,
    extract_domain_from_referer,
    extract_verification_key,
)

KEY = "0123456789abcdef0123456789abcdef"


def test_phone_normalization():
    assert normalize_phone("+7 (999) 123-45-67") == "+79991234567"
    assert normalize_phone("8 999 123 45 67") == "+79991234567"
    assert normalize_phone("79991234567") == "+79991234567"
    assert normalize_phone("9991234567") == "+79991234567"
    assert normalize_phone("441234567890") == "+441234567890"
    assert normalize_phone(79991234567) == "+79991234567"

    assert normalize_phone(None) is None
    assert normalize_phone("call me") is None


def test_phone_validation():
    assert is_valid_phone("+79991234567") is True
    assert is_valid_phone("+123456789") is False  # 9 digits
    assert is_valid_phone("+1234567890123456") is False  # 16 digits
    assert is_valid_phone("79991234567") is False
    assert is_valid_phone(None) is False


def test_source_classification():
    assert determine_source({"source": "WhatsApp"}) == "whatsapp"
    assert determine_source({"wa_verified": False, "phone": "1"}) == "whatsapp"
    assert determine_source({"call_status": "ok"}) == "whatsapp"
    assert determine_source({"Name": "A", "Phone": "+79991234567"}) == "tilda"
    assert determine_source({"formid": "form123"}) == "tilda"
    assert determine_source({"phone": "1"}, {"User-Agent": "Apache-HttpClient/4.5"}) == "whatsapp"
    assert determine_source({"phone": "1"}, {"user-agent": "curl/8"}) == "unknown"
    assert determine_source({}) == "unknown"


def test_verification_key_from_query_or_header():
    assert extract_verification_key({"key": KEY}) == KEY
    assert extract_verification_key({}, {"X-Webhook-Url": f"https://relay.example/?key={KEY}"}) == KEY
    # query wins over header
    other = "f" * 32
    assert extract_verification_key({"key": other}, {"x-webhook-url": f"https://x/?key={KEY}"}) == other


def test_verification_key_rejects_bad_format():
    assert extract_verification_key({"key": "NOT-A-KEY"}) is None
    assert extract_verification_key({"key": KEY.upper()}) is None
    assert extract_verification_key({}) is None
    assert extract_verification_key(None, None) is None


def test_referer_domain():
    assert extract_domain_from_referer({"Referer": "https://www.shop.example/landing?x=1"}) == "shop.example"
    assert extract_domain_from_referer({"referer": "https://promo.example"}) == "promo.example"
    assert extract_domain_from_referer({"referer": "garbage"}) is None
    assert extract_domain_from_referer({}) is None
