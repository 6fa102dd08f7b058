import pytest

from chat_core.domain.exceptions import InvalidFormat, PayloadTooLarge, TooLong, UnsupportedMediaType
from chat_core.domain.models import ImageAttachment, SystemCommand
from chat_core.pipeline.validator import InputValidator, sanitize_message


def test_plain_message_passes():
    v = InputValidator()
    result = v.validate("hello there")
    assert result.message == "hello there"
    assert result.image is None
    assert result.command is SystemCommand.NONE


def test_missing_message_without_file():
    v = InputValidator()
    with pytest.raises(InvalidFormat):
        v.validate(None)
    with pytest.raises(InvalidFormat):
        v.validate("   ")
    with pytest.raises(InvalidFormat):
        v.validate(42)


def test_missing_message_allowed_with_image():
    v = InputValidator()
    image = ImageAttachment(data=b"\x89PNG", mime_type="image/png")
    result = v.validate(None, image)
    assert result.message == ""
    assert result.image is image


def test_too_long():
    v = InputValidator(max_message_length=10)
    v.validate("x" * 10)
    with pytest.raises(TooLong) as exc:
        v.validate("x" * 11)
    assert exc.value.http_status == 400


def test_non_image_rejected():
    v = InputValidator()
    with pytest.raises(UnsupportedMediaType):
        v.validate("look", ImageAttachment(data=b"%PDF", mime_type="application/pdf"))


def test_oversized_image_rejected():
    v = InputValidator(max_file_bytes=4)
    with pytest.raises(PayloadTooLarge):
        v.validate("look", ImageAttachment(data=b"12345", mime_type="image/jpeg"))


def test_script_markup_removed():
    cleaned = sanitize_message('hi <script>alert("x")</script><b>there</b>')
    assert cleaned == "hi there"
    assert "<" not in cleaned


def test_only_markup_is_invalid():
    v = InputValidator()
    with pytest.raises(InvalidFormat):
        v.validate("<script>alert(1)</script>")


def test_help_command_short_circuits_file_checks():
    v = InputValidator()
    result = v.validate("/help", ImageAttachment(data=b"x", mime_type="text/plain"))
    assert result.command is SystemCommand.HELP
    assert result.image is None


def test_advertised_command_falls_through():
    v = InputValidator()
    result = v.validate("/explain recursion")
    assert result.command is SystemCommand.EXPLAIN
    assert result.message == "/explain recursion"


def test_ampersands_kept_as_typed():
    assert sanitize_message("Q&A") == "Q&A"
    assert sanitize_message("R&D budget") == "R&D budget"
    assert sanitize_message("AT&T rocks") == "AT&T rocks"
    assert sanitize_message("fish & chips &") == "fish & chips &"
    assert sanitize_message("use &amp; or &#38;") == "use &amp; or &#38;"


def test_markup_stripped_around_ampersands():
    assert sanitize_message("<b>Q&A</b> a < b<script>x&y</script>") == "Q&A a < b"
