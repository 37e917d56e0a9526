import pytest

from kvline.exceptions import ProtocolError
from kvline.network.protocol import (
    Command,
    ParseFailure,
    Request,
    Response,
    Status,
    parse_request,
    parse_response,
)


class TestParseRequest:
    def test_set_with_multiword_value(self):
        req = parse_request(b"SET alpha hello world\n")
        assert req == Request(Command.SET, "alpha", b"hello world")

    def test_get(self):
        req = parse_request(b"GET alpha\n")
        assert req.command is Command.GET
        assert req.key == "alpha"
        assert req.value is None

    def test_del(self):
        req = parse_request(b"DEL alpha\n")
        assert req.command is Command.DEL
        assert req.key == "alpha"

    def test_value_keeps_inner_and_trailing_whitespace(self):
        req = parse_request(b"SET k  a \t b  \n")
        assert req.value == b"a \t b  "

    def test_without_trailing_newline(self):
        assert parse_request(b"GET k").key == "k"

    def test_crlf_terminated(self):
        req = parse_request(b"SET k v\r\n")
        assert req.value == b"v"

    def test_only_first_line_is_used(self):
        req = parse_request(b"GET a\nSET b c\n")
        assert req.command is Command.GET
        assert req.key == "a"

    def test_extra_tokens_ignored_for_get(self):
        req = parse_request(b"GET k extra stuff\n")
        assert req.key == "k"
        assert req.value is None

    def test_non_utf8_value_round_trips(self):
        req = parse_request(b"SET k \xff\xfe\x80\n")
        assert req.value == b"\xff\xfe\x80"

    @pytest.mark.parametrize("data", [b"", b"\n", b"   \n", b"\r\n"])
    def test_missing_command(self, data):
        with pytest.raises(ProtocolError) as exc:
            parse_request(data)
        assert exc.value.reason is ParseFailure.MISSING_COMMAND
        assert exc.value.message == "Falta comando"

    @pytest.mark.parametrize("data", [b"BOGUS\n", b"FOO bar baz\n", b"get k\n", b"Set k v\n", b"INVALID k\n"])
    def test_invalid_command(self, data):
        with pytest.raises(ProtocolError) as exc:
            parse_request(data)
        assert exc.value.reason is ParseFailure.INVALID_COMMAND

    @pytest.mark.parametrize("data", [b"GET\n", b"DEL\n", b"SET\n", b"GET   \n"])
    def test_missing_key(self, data):
        with pytest.raises(ProtocolError) as exc:
            parse_request(data)
        assert exc.value.reason is ParseFailure.MISSING_KEY

    @pytest.mark.parametrize("data", [b"SET k\n", b"SET k    \n"])
    def test_missing_value(self, data):
        with pytest.raises(ProtocolError) as exc:
            parse_request(data)
        assert exc.value.reason is ParseFailure.MISSING_VALUE

    def test_key_length_limit_is_enforced_not_truncated(self):
        assert parse_request(b"GET " + b"k" * 99).key == "k" * 99
        with pytest.raises(ProtocolError) as exc:
            parse_request(b"GET " + b"k" * 100)
        assert exc.value.reason is ParseFailure.KEY_TOO_LONG

    def test_key_length_counts_encoded_bytes(self):
        # "€" is three bytes in UTF-8
        at_limit = "€" * 33
        assert parse_request(f"GET {at_limit}\n".encode()).key == at_limit
        with pytest.raises(ProtocolError) as exc:
            parse_request(f"GET {'€' * 34}\n".encode())
        assert exc.value.reason is ParseFailure.KEY_TOO_LONG

    def test_value_length_limit(self):
        assert parse_request(b"SET k 12345", max_value_length=5).value == b"12345"
        with pytest.raises(ProtocolError) as exc:
            parse_request(b"SET k 123456", max_value_length=5)
        assert exc.value.reason is ParseFailure.VALUE_TOO_LONG

    def test_command_checked_before_operands(self):
        with pytest.raises(ProtocolError) as exc:
            parse_request(b"BOGUS ../etc/passwd\n")
        assert exc.value.reason is ParseFailure.INVALID_COMMAND


class TestResponse:
    def test_wire_forms(self):
        assert Response.ok().to_bytes() == b"OK\n"
        assert Response.ok(b"hello world").to_bytes() == b"OK\nhello world\n"
        assert Response.not_found().to_bytes() == b"NOTFOUND\n"
        assert Response.error("Comando invalido").to_bytes() == b"ERROR: Comando invalido\n"
        assert Response.invalid_key().to_bytes() == b"ERROR: Clave invalida\n"

    def test_parse_value_reply(self):
        resp = parse_response(b"OK\nhello world\n")
        assert resp.status is Status.OK
        assert resp.value == b"hello world"

    def test_parse_plain_ok(self):
        resp = parse_response(b"OK\n")
        assert resp.is_ok
        assert resp.value is None

    def test_parse_notfound(self):
        assert parse_response(b"NOTFOUND\n").status is Status.NOTFOUND

    def test_parse_error(self):
        resp = parse_response(b"ERROR: Falta clave\n")
        assert resp.status is Status.ERROR
        assert resp.message == "Falta clave"

    def test_parse_garbage(self):
        with pytest.raises(ProtocolError):
            parse_response(b"HELLO\n")

    @pytest.mark.parametrize("reason", list(ParseFailure))
    def test_every_parse_failure_renders_as_error(self, reason):
        wire = Response.error(reason.value).to_bytes()
        assert wire == f"ERROR: {reason.value}\n".encode()
