import pytest

from rfq_messaging.errors import ValidationFailed
from rfq_messaging.value_objects import (
    ContentType,
    Email,
    FileSize,
    ManufacturerId,
    MessageBody,
    RfqId,
    TenantId,
)


@pytest.mark.parametrize("raw", ["buyer@x.com", "first.last+tag@sub.example.org", "a_b%c@d-e.io"])
def test_email_accepts_valid_addresses(raw):
    assert Email(raw).value == raw


@pytest.mark.parametrize("raw", ["", "no-at-sign", "a@b", "a@b.c", "a b@c.com", "@example.com"])
def test_email_rejects_invalid_addresses(raw):
    with pytest.raises(ValidationFailed, match="Invalid email format"):
        Email(raw)


def test_tenant_id_rules():
    assert TenantId("t1").value == "t1"
    assert TenantId("a" * 50).value == "a" * 50
    with pytest.raises(ValidationFailed):
        TenantId("")
    with pytest.raises(ValidationFailed):
        TenantId("a" * 51)
    with pytest.raises(ValidationFailed, match="alphanumeric"):
        TenantId("tenant/1")


def test_rfq_id_is_free_form_but_bounded():
    assert RfqId("anything goes here").value == "anything goes here"
    with pytest.raises(ValidationFailed):
        RfqId("")
    with pytest.raises(ValidationFailed):
        RfqId("r" * 51)


def test_generated_rfq_id_format():
    rfq_id = RfqId.generate().value
    assert rfq_id.startswith("r_")
    suffix = rfq_id[2:]
    assert len(suffix) == 8
    assert suffix == suffix.upper()
    int(suffix, 16)


def test_manufacturer_id_requires_prefix():
    assert ManufacturerId("mfg_ABC12345").value == "mfg_ABC12345"
    with pytest.raises(ValidationFailed, match="mfg_"):
        ManufacturerId("ABC12345")
    with pytest.raises(ValidationFailed):
        ManufacturerId("mfg_")
    assert ManufacturerId.generate().value.startswith("mfg_")


def test_content_type_allow_list():
    assert ContentType("image/png").value == "image/png"
    assert ContentType("application/pdf").value == "application/pdf"
    with pytest.raises(ValidationFailed, match="not allowed"):
        ContentType("text/html")


def test_file_size_boundaries():
    assert FileSize(1).value == 1
    assert FileSize(15 * 1024 * 1024).value == 15 * 1024 * 1024
    with pytest.raises(ValidationFailed):
        FileSize(0)
    with pytest.raises(ValidationFailed):
        FileSize(15 * 1024 * 1024 + 1)
    with pytest.raises(ValidationFailed):
        FileSize(True)


def test_message_body_length_boundaries():
    assert MessageBody("x" * 8000).value == "x" * 8000
    with pytest.raises(ValidationFailed, match="empty"):
        MessageBody("")
    with pytest.raises(ValidationFailed, match="maximum length"):
        MessageBody("x" * 8001)


def test_message_body_bracket_heuristic():
    # Either bracket alone is fine; both anywhere in the body are refused
    assert MessageBody("Tolerance < 0.1mm").value == "Tolerance < 0.1mm"
    assert MessageBody("Quantity > 500").value == "Quantity > 500"
    with pytest.raises(ValidationFailed, match="HTML"):
        MessageBody("<b>bold</b>")
    with pytest.raises(ValidationFailed, match="HTML"):
        MessageBody("a > b but c < d")


def test_value_objects_are_immutable_and_compare_by_value():
    email = Email("buyer@x.com")
    assert email == Email("buyer@x.com")
    assert hash(email) == hash(Email("buyer@x.com"))
    assert email != TenantId("buyer")
    with pytest.raises(AttributeError):
        email._value = "other@x.com"
