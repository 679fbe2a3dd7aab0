import asyncio

import pytest
from pydantic import ValidationError

from sprig.exceptions import BodyConsumedError
from sprig.exceptions import RequestAbortedError
from sprig.models import AbortSignal
from sprig.models import Body
from sprig.models import CacheMode
from sprig.models import Credentials
from sprig.models import Headers
from sprig.models import Request
from sprig.models import Response


class TestHeaders:
    def test_lookup_is_case_insensitive(self):
        headers = Headers({"Content-Type": "text/plain"})
        assert headers.get("content-type") == "text/plain"
        assert "CONTENT-TYPE" in headers
        assert headers["Content-type"] == "text/plain"

    def test_write_methods_return_new_headers(self):
        headers = Headers([("Accept", "text/html")])
        updated = headers.set("X-Trace", "abc")
        assert "X-Trace" not in headers
        assert updated.get("x-trace") == "abc"

    def test_set_replaces_all_values(self):
        headers = Headers([("Accept", "a"), ("accept", "b")])
        assert headers.set("ACCEPT", "c").get_all("accept") == ["c"]

    def test_append_keeps_duplicates_in_order(self):
        headers = Headers({"Accept": "text/html"}).append("accept", "text/plain")
        assert headers.get_all("Accept") == ["text/html", "text/plain"]
        assert len(headers) == 2
        assert headers.keys() == ["Accept"]

    def test_delete_and_update(self):
        headers = Headers([("A", "1"), ("B", "2"), ("b", "3")])
        assert "a" not in headers.delete("a")
        updated = headers.update({"b": "4", "C": "5"})
        assert updated.get_all("B") == ["4"]
        assert updated.get("c") == "5"
        assert updated.get("a") == "1"

    def test_equality_folds_case(self):
        assert Headers({"X-A": "1"}) == Headers({"x-a": "1"})
        assert Headers({"X-A": "1"}) != Headers({"X-A": "2"})


class TestBody:
    @pytest.mark.asyncio
    async def test_body_can_be_read_once(self):
        body = Body("hello")
        assert not body.used
        assert await body.read() == b"hello"
        assert body.used
        with pytest.raises(BodyConsumedError):
            await body.read()

    @pytest.mark.asyncio
    async def test_clone_reads_independently(self):
        body = Body(b"data")
        copy = body.clone()
        assert await body.read() == b"data"
        assert await copy.read() == b"data"

    @pytest.mark.asyncio
    async def test_clone_of_async_stream(self):
        async def chunks():
            yield b"ab"
            yield b"cd"

        body = Body(chunks())
        first, second = body.clone(), body.clone()
        assert await first.read() == b"abcd"
        assert await second.read() == b"abcd"
        assert await body.read() == b"abcd"

    @pytest.mark.asyncio
    async def test_async_reader_is_awaited(self):
        class Reader:
            async def read(self):
                return b"from reader"

        body = Body(Reader())
        copy = body.clone()
        assert await body.read() == b"from reader"
        assert await copy.read() == b"from reader"

    @pytest.mark.asyncio
    async def test_clone_after_read_fails(self):
        body = Body(b"x")
        await body.read()
        with pytest.raises(BodyConsumedError):
            body.clone()

    def test_mapping_is_rejected(self):
        with pytest.raises(TypeError):
            Body({"a": 1})


class TestRequest:
    def test_defaults_and_normalization(self):
        request = Request(url="https://api.test/items", method="post")
        assert request.method == "POST"
        assert request.credentials is Credentials.SAME_ORIGIN
        assert request.cache is CacheMode.DEFAULT
        assert request.body is None
        assert len(request.headers) == 0

    def test_relative_url_is_rejected(self):
        with pytest.raises(ValidationError):
            Request(url="/items")

    def test_is_immutable(self):
        request = Request(url="https://api.test/")
        with pytest.raises(ValidationError):
            request.method = "PUT"

    def test_replace_revalidates(self):
        request = Request(url="https://api.test/")
        assert request.replace(method="delete").method == "DELETE"
        assert request.replace(cache="no-store").cache is CacheMode.NO_STORE
        with pytest.raises(ValidationError):
            request.replace(url="nope")

    @pytest.mark.asyncio
    async def test_clone_has_independent_body(self):
        request = Request(url="https://api.test/", method="POST", body='{"a": 1}')
        copy = request.clone()
        assert await request.json() == {"a": 1}
        assert request.body_used
        assert not copy.body_used
        assert await copy.text() == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_form_data(self):
        request = Request(
            url="https://api.test/",
            method="POST",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            body="a=1&b=two",
        )
        form = await request.form_data()
        assert form.get("a") == "1"
        assert form.get("b") == "two"


class TestResponse:
    def test_status_text_defaults_to_reason_phrase(self):
        assert Response(status=404).status_text == "Not Found"
        assert Response(status=404, status_text="Nope").status_text == "Nope"

    def test_ok(self):
        assert Response(status=299).ok
        assert not Response(status=300).ok

    @pytest.mark.parametrize("status", [101, 103, 204, 205, 304])
    def test_null_body_statuses_have_no_body(self, status):
        response = Response(status=status, body=b"ignored")
        assert response.body is None
        assert response.replace(body=b"again").body is None

    @pytest.mark.asyncio
    async def test_204_reads_empty(self):
        assert await Response(status=204).read() == b""

    def test_status_range(self):
        with pytest.raises(ValidationError):
            Response(status=600)


class TestAbortSignal:
    def test_abort_sets_reason_and_notifies(self):
        signal = AbortSignal()
        seen = []
        signal.add_listener(lambda s: seen.append(s.reason))
        signal.abort("stop")
        signal.abort("again")
        assert signal.aborted
        assert seen == ["stop"]
        with pytest.raises(RequestAbortedError, match="stop"):
            signal.raise_if_aborted()

    @pytest.mark.asyncio
    async def test_timeout(self):
        signal = AbortSignal.timeout(0.01)
        assert not signal.aborted
        await asyncio.wait_for(signal.wait(), 1)
        assert isinstance(signal.reason, TimeoutError)

    def test_any_follows_first_abort(self):
        first, second = AbortSignal(), AbortSignal()
        combined = AbortSignal.any([first, None, second])
        second.abort("second")
        first.abort("first")
        assert combined.aborted
        assert combined.reason == "second"

    def test_remove_listener(self):
        signal = AbortSignal()
        seen = []

        def listener(s):
            seen.append(s.reason)

        signal.add_listener(listener)
        signal.remove_listener(listener)
        signal.remove_listener(listener)
        signal.abort("stop")
        assert seen == []

    @pytest.mark.asyncio
    async def test_released_timeout_never_fires(self):
        signal = AbortSignal.timeout(0.01)
        signal.release()
        await asyncio.sleep(0.05)
        assert not signal.aborted

    def test_released_any_stops_following(self):
        source = AbortSignal()
        combined = AbortSignal.any([source])
        combined.release()
        source.abort("late")
        assert source.aborted
        assert not combined.aborted

    def test_any_of_aborted_signal(self):
        source = AbortSignal()
        source.abort("early")
        combined = AbortSignal.any([source, AbortSignal()])
        assert combined.reason == "early"
